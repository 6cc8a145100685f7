"""Command-line interface for aptwrap"""
