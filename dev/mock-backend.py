#!/usr/bin/env python3
"""Mock crowdfunding REST API for local development (auth, projects, donations)."""

import secrets
import sys

from flask import Flask, jsonify, request

app = Flask(__name__)

AUTH_SCHEMES = ("Token", "Bearer")

USERS = {
    "demo@example.com": {
        "password": "password",
        "profile": {
            "id": 1,
            "username": "demo",
            "email": "demo@example.com",
            "first_name": "Demo",
            "last_name": "User",
            "mobile_phone": "01000000000",
        },
    }
}
TOKENS = {}  # token -> email

PROJECTS = [
    {
        "id": 201,
        "slug": "smart-home-energy-saver",
        "title": "Smart Home Energy Saver",
        "current_amount": 5000,
        "goal_amount": 10000,
        "end_time": "2026-12-31T00:00:00Z",
    },
    {
        "id": 103,
        "slug": "community-garden",
        "title": "Community Garden Project",
        "current_amount": 1200,
        "goal_amount": 3000,
        "end_time": "2026-11-15T00:00:00Z",
    },
]
DONATIONS = []


def _current_user():
    header = request.headers.get("Authorization", "")
    parts = header.split(None, 1)
    if len(parts) != 2 or parts[0] not in AUTH_SCHEMES:
        return None
    email = TOKENS.get(parts[1].strip())
    return USERS.get(email) if email else None


def _unauthorized():
    return jsonify({"detail": "Invalid token."}), 401


@app.route("/api/auth/login/", methods=["POST"])
def login():
    body = request.get_json(silent=True) or {}
    email = body.get("email") or body.get("username")
    user = USERS.get(email or "")
    if not user or user["password"] != body.get("password"):
        return jsonify({"detail": "Invalid credentials"}), 401
    token = secrets.token_hex(20)
    TOKENS[token] = email
    return jsonify({"token": token, "user": user["profile"]})


@app.route("/api/auth/logout/", methods=["POST"])
def logout():
    header = request.headers.get("Authorization", "")
    parts = header.split(None, 1)
    if len(parts) == 2:
        TOKENS.pop(parts[1].strip(), None)
    return jsonify({})


@app.route("/api/auth/register/", methods=["POST"])
def register():
    body = request.get_json(silent=True) or {}
    errors = {}
    for field in ("username", "email", "password"):
        if not body.get(field):
            errors[field] = ["This field is required."]
    if body.get("email") in USERS:
        errors["email"] = ["A user with that email already exists."]
    if errors:
        return jsonify(errors), 400
    USERS[body["email"]] = {
        "password": body["password"],
        "profile": {
            "id": len(USERS) + 1,
            "username": body["username"],
            "email": body["email"],
            "first_name": body.get("first_name", ""),
            "last_name": body.get("last_name", ""),
        },
    }
    return jsonify({}), 201


@app.route("/api/auth/profile/", methods=["GET", "PUT"])
def profile():
    user = _current_user()
    if user is None:
        return _unauthorized()
    if request.method == "PUT":
        body = request.get_json(silent=True) or request.form.to_dict()
        user["profile"].update({k: v for k, v in body.items() if k not in ("id", "email")})
    return jsonify(user["profile"])


@app.route("/api/auth/forgot-password/", methods=["POST"])
def forgot_password():
    body = request.get_json(silent=True) or {}
    if not body.get("email"):
        return jsonify({"email": ["This field is required."]}), 400
    return jsonify({})


@app.route("/api/auth/reset-password/<uid>/<token>/", methods=["POST"])
def reset_password(uid, token):
    body = request.get_json(silent=True) or {}
    if not body.get("password"):
        return jsonify({"password": ["This field is required."]}), 400
    return jsonify({})


@app.route("/api/auth/activate/<uid>/<token>/", methods=["GET"])
def activate(uid, token):
    return jsonify({})


@app.route("/api/project/", methods=["GET"])
def projects():
    return jsonify({"count": len(PROJECTS), "page_size": 10, "results": PROJECTS})


@app.route("/api/categories/", methods=["GET"])
def categories():
    return jsonify([{"id": 1, "name": "Technology"}, {"id": 2, "name": "Community"}])


@app.route("/api/donations/", methods=["GET", "POST"])
def donations():
    user = _current_user()
    if user is None:
        return _unauthorized()
    if request.method == "POST":
        body = request.get_json(silent=True) or {}
        donation = {"id": len(DONATIONS) + 1, "project": body.get("project"), "amount": body.get("amount")}
        DONATIONS.append(donation)
        return jsonify(donation), 201
    return jsonify({"count": len(DONATIONS), "page_size": 10, "results": DONATIONS})


@app.route("/healthz")
def health():
    """Health check endpoint."""
    return jsonify({"status": "ok"})


if __name__ == "__main__":
    print("Mock crowdfunding API starting on http://0.0.0.0:18000/api/", file=sys.stderr)
    app.run(host="0.0.0.0", port=18000, debug=False)
