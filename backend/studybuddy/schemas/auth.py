"""
StudyBuddy Backend — Auth Schemas
===================================

Request bodies keep every field optional; AuthService reports missing fields as
400 ValidationError ("All fields are required").
"""

from typing import Optional

from studybuddy.schemas.common import CamelModel


class RegisterRequest(CamelModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None


class RegisterResponse(CamelModel):
    message: str = "User registered successfully"
    redirect: str = "/login.html"


class LoginResponse(CamelModel):
    message: str = "Login successful"
    redirect: str = "/dashboard.html"
    username: str
    email: str
    user_id: str
