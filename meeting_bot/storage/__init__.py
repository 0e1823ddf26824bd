"""
Storage Module

Uploads finished recordings to S3.
"""

from .s3_service import S3Service

__all__ = ["S3Service"]
