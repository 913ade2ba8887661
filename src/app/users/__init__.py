"""Users module -- accounts, roles, profiles, and in-app notifications.

Provides SQLAlchemy models (UserModel, NotificationModel), Pydantic schemas,
UserRepository / NotificationRepository for async CRUD, and UserService
for registration, login and profile access rules.
"""
