"""Mail template and story catalogs loaded from YAML"""
