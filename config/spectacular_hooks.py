"""
drf-spectacular hooks.
"""

INTERNAL_PATHS = ('/health/',)

# Longest prefix first
TAGS_BY_PREFIX = (
    ('/api/documents/handover-override/', 'Handover overrides'),
    ('/api/documents/cheques/', 'Cheques'),
    ('/api/accounts/', 'Staff auth'),
)


def preprocess_exclude_internal(endpoints, **kwargs):
    """Keep Django admin and health checks out of the public API docs."""
    return [
        (path, path_regex, method, callback)
        for (path, path_regex, method, callback) in endpoints
        if not path.startswith('/admin/') and path not in INTERNAL_PATHS
    ]


def postprocess_tag_by_area(result, generator, request, public):
    """Group operations by API area instead of the first path segment."""
    for path, operations in result.get('paths', {}).items():
        tag = _tag_for(path)
        if not tag:
            continue
        for operation in operations.values():
            if isinstance(operation, dict):
                operation['tags'] = [tag]
    return result


def _tag_for(path):
    for prefix, tag in TAGS_BY_PREFIX:
        if path.startswith(prefix):
            return tag
    return None
