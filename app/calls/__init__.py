"""Call log persistence and call metadata helpers"""
