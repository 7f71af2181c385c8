"""
Test suite for the ATTOM gateway

Unit tests run against an in-process fake of the ATTOM API
(``httpx.MockTransport``); no network access or real API keys are needed.
"""
