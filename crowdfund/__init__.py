"""
Client library for the crowdfunding REST backend.

The interesting part is `crowdfund.auth`: token storage, the session state machine,
request interceptors and the route guard. `crowdfund.services` holds thin wrappers
for the project and donation endpoints.
"""
