"""
Pytest configuration file.

Puts the project root on the Python path so the flat modules
(main, spectra_process, utils, ...) import the same way under pytest
as they do when the API is started from this directory.
"""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))
