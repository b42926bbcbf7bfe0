"""
HTTP API: health-проверки пула соединений.
"""
