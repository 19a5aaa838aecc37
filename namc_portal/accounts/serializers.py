from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.exceptions import AuthenticationFailed
from django.contrib.auth import authenticate
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoPasswordValidationError


from .models import Member


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    Serializer for member login and token generation.

    Fields:
        - email (required)
        - password (required)
    Checks the account is active before issuing tokens.
    """
    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['email'] = user.email
        token['member_type'] = user.member_type
        return token

    def validate(self, attrs):
        user = Member.objects.filter(email=attrs.get('email')).first()
        if user is not None and not user.is_active:
            raise AuthenticationFailed("This account is deactivated.")

        return super().validate(attrs)


class RegistrationSerializer(serializers.ModelSerializer):
    """
    Serializer for member registration.

    Fields :
        required: first_name, last_name, member_type, email, password, confirm_password
        optional: company_name, phone_number
    Validates password confirmation and creates a new member.
    """
    password = serializers.CharField(required=True, write_only=True)
    confirm_password = serializers.CharField(required=True, write_only=True)

    class Meta:
        model = Member
        fields = ['id', 'first_name', 'last_name', 'member_type', 'company_name', 'phone_number', 'email', 'password', 'confirm_password']
        read_only_fields = ['id']
        extra_kwargs = {
            'first_name': {'required': True},
            'last_name': {'required': True},
            'email': {'required': True},
            'member_type': {'required': True},
        }

    def validate(self, attrs):
        if attrs['password'] != attrs['confirm_password']:
            raise serializers.ValidationError("Passwords do not match.")
        prospective_user = Member(
            email=attrs.get('email'),
            first_name=attrs.get('first_name'),
            last_name=attrs.get('last_name'),
        )

        try:
            validate_password(attrs['password'], user=prospective_user)
        except DjangoPasswordValidationError as exc:
            raise serializers.ValidationError({'password': list(exc.messages)})

        return attrs

    def create(self, validated_data):
        validated_data.pop('confirm_password')
        return Member.objects.create_user(**validated_data)


class SessionLoginSerializer(serializers.Serializer):
    """Credentials for cookie-based session login."""
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)

    def validate(self, attrs):
        user = authenticate(
            request=self.context.get('request'),
            email=attrs['email'],
            password=attrs['password'],
        )
        if user is None:
            raise AuthenticationFailed("Invalid credentials")
        attrs['user'] = user
        return attrs


class MemberProfileSerializer(serializers.ModelSerializer):
    """
    Serializer for member profile retrieval and updates.

    The id, email and member_type fields are read-only.
    """
    class Meta:
        model = Member
        fields = ('id', 'first_name', 'last_name', 'email', 'member_type', 'company_name', 'phone_number', 'stripe_account_id')
        read_only_fields = ('id', 'email', 'member_type')


class MemberSummarySerializer(serializers.ModelSerializer):
    """Lightweight member reference embedded in project and payment payloads."""
    class Meta:
        model = Member
        fields = ['id', 'first_name', 'last_name', 'email', 'company_name']
        read_only_fields = fields
