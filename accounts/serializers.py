"""
Accounts Serializers
"""

from rest_framework import serializers
from accounts.models import StaffUser


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField()


class RefreshTokenSerializer(serializers.Serializer):
    refresh_token = serializers.CharField()


class StaffUserSerializer(serializers.ModelSerializer):
    class Meta:
        model = StaffUser
        fields = ['id', 'email', 'name', 'phone', 'role']
        read_only_fields = fields


class StaffUserBriefSerializer(serializers.ModelSerializer):
    class Meta:
        model = StaffUser
        fields = ['id', 'name', 'email', 'role']
        read_only_fields = fields
