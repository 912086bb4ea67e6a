"""
Authentication application.

Users, their profiles and stored marketplace roles, plus the explicit
AuthContext that views hand to services.

Key components:
    - User model: Custom email-based user authentication
    - Profile model: Display name and Stripe customer reference
    - UserRole model: Stored client/provider/admin role assignments
    - AuthContext: Immutable caller identity built once per request

Usage:
    from authentication.models import User, Profile, UserRole
    from authentication.context import AuthContext
"""
