"""
Middleware package for the age verification API.
"""
from middleware.request_id import RequestIDMiddleware

__all__ = ["RequestIDMiddleware"]
