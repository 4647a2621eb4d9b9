"""Command line interface for disposal"""
