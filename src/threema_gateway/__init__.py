"""Client library for the Threema Gateway, with end-to-end encryption."""

from threema_gateway.api import ApiBuilder, E2eApi, SimpleApi
from threema_gateway.crypto import PrivateKey, RecipientKey

__version__ = "0.13.0"
