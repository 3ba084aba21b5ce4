"""
s3_archive — move original files of repository nodes into S3 and link them back.
"""
__version__ = "1.0.0"
