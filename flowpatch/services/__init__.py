"""
Services
I/O orchestration around the pure diff engine
"""
