"""
Client-side session lifecycle.

Design goals:
- One writer for the stored token (the controller); everyone else reads at point of use.
- 401 on a protected call logs out exactly once; 401 on login is just "wrong password".
- Network failures never destroy a possibly-valid token.
"""
