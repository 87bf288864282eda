"""eWay-CRM gateway: authenticated REST access to the eWay-CRM API."""

__version__ = "1.0.0"
