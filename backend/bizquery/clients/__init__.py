"""
Upstream adapters: identity (token exchange), directory, financial ERP and
text completion. Every client is bound to a request-owned httpx.AsyncClient.
"""
