"""REST API for the progress engine"""
