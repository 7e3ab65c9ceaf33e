"""
Pydantic schemas and table descriptors
"""
