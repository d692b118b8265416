"""
Custom Pagination Classes
"""

from rest_framework.pagination import CursorPagination
from rest_framework.response import Response


class CursorResultsPagination(CursorPagination):
    """
    Cursor-based pagination. The ``next`` link carries the opaque
    continuation token for the following page.
    """

    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100
    ordering = '-created_at'
    cursor_query_param = 'cursor'

    def get_paginated_response(self, data):
        return Response({
            'success': True,
            'data': data,
            'pagination': {
                'next': self.get_next_link(),
                'previous': self.get_previous_link(),
                'page_size': self.get_page_size(self.request),
            }
        })

    def get_paginated_response_schema(self, schema):
        return {
            'type': 'object',
            'properties': {
                'success': {'type': 'boolean'},
                'data': schema,
                'pagination': {
                    'type': 'object',
                    'properties': {
                        'next': {'type': 'string', 'nullable': True, 'format': 'uri'},
                        'previous': {'type': 'string', 'nullable': True, 'format': 'uri'},
                        'page_size': {'type': 'integer'},
                    },
                },
            },
        }
