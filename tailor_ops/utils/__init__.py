"""
Pure helpers shared by services: date conversion, money coercion, input cleanup.
"""
