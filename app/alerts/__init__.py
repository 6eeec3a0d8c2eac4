"""Alert recording and notification fan-out"""
