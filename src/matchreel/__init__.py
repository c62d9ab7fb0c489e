"""Matchreel: spoiler-safe replay of match event logs.

Detects notable moments, renders them as presentation cards, redacts hidden
state for spectators, and binds user-authored commentary to the timeline.
"""
