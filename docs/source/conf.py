import os
import sys
sys.path.insert(0, os.path.abspath('../..'))  # points to repo root

# importing the app creates tables, so keep autodoc off the real database
os.environ.setdefault("DATABASE_URL", "sqlite://")

# Sphinx configuration for the Futsal Booking Service API docs.
# https://www.sphinx-doc.org/en/master/usage/configuration.html

# -- Project information -----------------------------------------------------

project = 'Futsal Field Booking Service'
copyright = '2026, Futsal Booking Team'
author = 'Futsal Booking Team'
release = '1.0.0'

# -- General configuration ---------------------------------------------------

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",   # numpy-style docstrings in routes and models
    "sphinx.ext.viewcode",
    "sphinx.ext.autosummary",
]
autosummary_generate = True
autodoc_member_order = "bysource"
napoleon_google_docstring = False
napoleon_numpy_docstring = True

templates_path = ['_templates']
exclude_patterns = []

# -- Options for HTML output -------------------------------------------------

html_theme = 'alabaster'
html_static_path = ['_static']
