# Configuration file for the Sphinx documentation builder.
#
# For the full list of built-in configuration values, see the documentation:
# https://www.sphinx-doc.org/en/master/usage/configuration.html

import os
import sys

# Add the project src to Python path
sys.path.insert(0, os.path.abspath('../../../src'))

# -- Project information -----------------------------------------------------

project = 'DriftGuard'
author = 'DriftGuard contributors'
release = '0.1.0'

# -- General configuration ---------------------------------------------------

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.viewcode",      # "View Source" links
    "myst_parser",              # Markdown support
    "sphinx_autodoc_typehints", # type-hint formatting
    "sphinx.ext.autosectionlabel",
]

templates_path = ['_templates']
exclude_patterns = []

# -- Options for HTML output -------------------------------------------------

html_theme = "furo"
html_static_path = ['_static']

autodoc_default_options = {
    "members": True,
    "undoc-members": False,
    "private-members": False,
    "show-inheritance": True,
}

# device / GUI / network stacks are not importable on the docs builder
autodoc_mock_imports = [
    "cv2",
    "PySide6",
    "google.generativeai",
    "dotenv",
]
