"""
Lon/lat geometry helpers: viewport bboxes, projections, slippy tiles.
"""
