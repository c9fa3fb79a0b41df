"""
SimTap URL Utilities

Shared URL parsing, normalization, and validation utilities.
"""

from urllib.parse import urlparse, parse_qsl, urlencode


class URLTools:
    """URL helpers used by configuration and the proxy strategy."""

    @staticmethod
    def normalize_query(query: str) -> str:
        """
        Normalize a query string for comparison.

        Parameters are sorted so that ``?b=2&a=1`` and ``?a=1&b=2`` produce
        the same result. Blank values are preserved.

        Args:
            query: Raw query string without the leading '?'

        Returns:
            Normalized query string
        """
        if not query:
            return ''
        pairs = parse_qsl(query, keep_blank_values=True)
        return urlencode(sorted(pairs), doseq=True)

    @staticmethod
    def is_absolute_url(url: str) -> bool:
        """
        Check that a URL is absolute and uses http or https.

        Args:
            url: URL to validate

        Returns:
            True if the URL has an http(s) scheme and a host
        """
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        return parsed.scheme in ('http', 'https') and bool(parsed.netloc)

    @staticmethod
    def join_url(base_url: str, path: str, query: str = '') -> str:
        """
        Join a base URL with a request path and query.

        Args:
            base_url: Upstream base URL, trailing slash optional
            path: Request path starting with '/'
            query: Query string without the leading '?'

        Returns:
            Full upstream URL
        """
        url = base_url.rstrip('/') + (path if path.startswith('/') else '/' + path)
        if query:
            url = f"{url}?{query}"
        return url
