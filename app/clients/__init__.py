"""
app/clients package marker.
"""
