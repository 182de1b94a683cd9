from django.urls import path

from . import auth_views as views

app_name = "auth"

urlpatterns = [
    path("register", views.register, name="register"),
    path("login", views.login, name="login"),
    path("refresh", views.refresh, name="refresh"),
    path("logout", views.logout, name="logout"),
    path("me", views.me, name="me"),
    path("profile", views.update_profile, name="profile"),
    path("password", views.change_password, name="password"),
    path("password-reset", views.reset_password, name="password_reset"),
    path("admin-setup", views.admin_setup, name="admin_setup"),
]
