"""
disposal - Clean-slate reinstall audit for Debian-style systems

Answers "what would differ if this machine were reinstalled from scratch?":
- Base set chosen by package priority
- Explicit no/yes override lists
- Notable vs incidental classification of every difference
"""

__version__ = "0.1.0"
__author__ = "disposal contributors"
