from routers import admin, auth, chat, health, mobile, subscriptions, user

ALL = [health.router, auth.router, chat.router, user.router, subscriptions.router, mobile.router, admin.router]
