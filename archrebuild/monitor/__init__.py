"""Terminal rendering of archrebuild results.

Modules
-------
renderer
    ``ReportRenderer`` turns verification reports, image comparisons,
    pipeline results and commit listings into Rich renderables.
"""
