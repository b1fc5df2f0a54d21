from django.urls import path
from accounts import views

app_name = 'accounts'

urlpatterns = [
    path('auth/login/', views.login, name='login'),
    path('auth/refresh/', views.refresh_token_view, name='refresh_token'),
    path('me/', views.me, name='me'),
]
