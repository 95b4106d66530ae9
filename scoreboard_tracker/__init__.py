"""
Darktide Scoreboard Tracker

This package parses per-match scoreboard log files (.lua) written by the
scoreboard plugin and stores them in a SQLite database for dashboard queries.
"""

__version__ = '0.1.0'
