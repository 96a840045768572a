"""
Rental listings: the records behind every map marker.
"""
