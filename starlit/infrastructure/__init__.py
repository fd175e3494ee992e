"""Database and environment settings"""
