"""
Business query proxy.

Answers free-text questions about a tenant's people, mail and ERP data by
classifying intent with an LLM, fetching a bounded slice of upstream data
and asking the LLM to answer from that data.
"""
