"""
Site settings module: the single active settings row, first-run setup, and
the media directory check used before accepting a new image directory.
"""
