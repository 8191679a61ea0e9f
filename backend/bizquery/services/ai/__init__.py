"""
Query pipeline package.

The language model is used twice per query: once to classify intent, once
to compose the answer. Everything between those two calls (which upstream
endpoints to hit, how many records, how failures degrade) is deterministic
code in strategies.py and orchestration.py.
"""
