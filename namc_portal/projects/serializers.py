from rest_framework import serializers
from django.contrib.auth import get_user_model


from accounts.serializers import MemberSummarySerializer
from .models import Project


User = get_user_model()


class ProjectSerializer(serializers.ModelSerializer):
    """
    Serializer for member projects.

    Fields:
        - title (required), description, location, estimated_value
        - contractor_id: optional, must reference a contractor member
    The authenticated member becomes the project client on create.
    """
    client = MemberSummarySerializer(read_only=True)
    contractor = MemberSummarySerializer(read_only=True)
    contractor_id = serializers.PrimaryKeyRelatedField(
        source='contractor',
        queryset=User.objects.filter(member_type='contractor', is_active=True),
        write_only=True,
        required=False,
        allow_null=True,
    )
    has_escrow = serializers.SerializerMethodField()

    class Meta:
        model = Project
        fields = ['id', 'client', 'contractor', 'contractor_id', 'title', 'description', 'location', 'estimated_value', 'status', 'has_escrow', 'created_at', 'updated_at']
        read_only_fields = ['id', 'client', 'contractor', 'has_escrow', 'created_at', 'updated_at']

    def get_has_escrow(self, obj):
        return hasattr(obj, 'escrow')

    def validate_estimated_value(self, value):
        if value is not None and value < 0:
            raise serializers.ValidationError("Please enter a valid amount.")
        return value

    def validate_contractor_id(self, value):
        # An escrow fixes the payout party; the contractor cannot change under it.
        if self.instance is not None and hasattr(self.instance, 'escrow') and value != self.instance.contractor:
            raise serializers.ValidationError("The contractor cannot change once an escrow exists.")
        return value

    def create(self, validated_data):
        request = self.context['request']
        return Project.objects.create(client=request.user, **validated_data)
