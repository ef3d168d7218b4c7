import os
import sys

# Make the top-level ``afexplot`` package importable from the repository root.
sys.path.insert(0, os.path.abspath(".."))

project = "afexplot"
author = "afexplot contributors"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
    "sphinx.ext.viewcode",
]

# Avoid documenting re-exported matplotlib classes whose docstrings carry
# cross-references into the matplotlib docs.
autodoc_default_options = {
    "exclude-members": "Axes,Figure,Line2D,Patch",
}

master_doc = "index"
templates_path = ["_templates"]
exclude_patterns = ["_build", "Thumbs.db", ".DS_Store"]

html_theme = "furo"
html_static_path = ["_static"]
