"""Administrative user management."""
