"""API route handlers for the advisor assistant."""

from advisor.api.routes import chat as chat
from advisor.api.routes import connections as connections
from advisor.api.routes import data_import as data_import
from advisor.api.routes import instructions as instructions
from advisor.api.routes import webhooks as webhooks
