"""Credential loading for the Confluence client.

Credentials come from the process environment, optionally seeded from a
``.env`` file via python-dotenv. They are validated up front so that a
missing variable is reported before the first network call.
"""

import os
from typing import List, NamedTuple, Optional

from dotenv import load_dotenv

from .errors import InvalidCredentialsError


class Credentials(NamedTuple):
    """Confluence API credentials."""
    url: str
    user: str
    api_token: str


REQUIRED_VARIABLES = ('CONFLUENCE_URL', 'CONFLUENCE_USER', 'CONFLUENCE_API_TOKEN')


def normalize_base_url(url: str) -> str:
    """Return the site URL with the ``/wiki`` context path and no trailing slash.

    Example:
        >>> normalize_base_url("https://acme.atlassian.net/")
        'https://acme.atlassian.net/wiki'
    """
    base = url.strip().rstrip('/')
    if not base.endswith('/wiki'):
        base = f"{base}/wiki"
    return base


class Authenticator:
    """Loads and validates Confluence credentials from environment variables.

    Required environment variables:
        CONFLUENCE_URL: Confluence site URL (e.g., https://yourinstance.atlassian.net/wiki)
        CONFLUENCE_USER: Confluence user email address
        CONFLUENCE_API_TOKEN: Confluence API token

    Credentials are never cached on the instance or logged.
    """

    def __init__(self, env_file: Optional[str] = None):
        """Load environment variables from a .env file.

        Args:
            env_file: Explicit path to a .env file; the default lookup of
                      python-dotenv is used when omitted
        """
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

    def missing_variables(self) -> List[str]:
        """Names of the required variables that are unset or empty."""
        return [name for name in REQUIRED_VARIABLES if not os.getenv(name)]

    def get_credentials(self) -> Credentials:
        """Get Confluence credentials from environment variables.

        Returns:
            Credentials with the base URL normalized to end in ``/wiki``

        Raises:
            InvalidCredentialsError: If any required credential is missing
        """
        if self.missing_variables():
            url = os.getenv('CONFLUENCE_URL')
            user = os.getenv('CONFLUENCE_USER')
            raise InvalidCredentialsError(
                user=user or "unknown",
                endpoint=url or "unknown",
            )

        return Credentials(
            url=normalize_base_url(os.environ['CONFLUENCE_URL']),
            user=os.environ['CONFLUENCE_USER'],
            api_token=os.environ['CONFLUENCE_API_TOKEN'],
        )
