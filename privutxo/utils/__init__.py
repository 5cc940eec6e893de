"""Logging and validation helpers"""
