"""
langshadow - multi-language shadow copies of relational rows
"""
__version__ = "0.1.0"
