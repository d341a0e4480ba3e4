from rest_framework import serializers

from accounts.serializers import UserBasicSerializer
from .models import Ride, RideParticipant, ChatMessage


class RideParticipantSerializer(serializers.ModelSerializer):
    user = UserBasicSerializer(read_only=True)

    class Meta:
        model = RideParticipant
        fields = ['user', 'joined_at']


class RideSerializer(serializers.ModelSerializer):
    """Serializer for rides"""
    creator = UserBasicSerializer(read_only=True)
    participants = RideParticipantSerializer(many=True, read_only=True)
    seats_available = serializers.SerializerMethodField()

    class Meta:
        model = Ride
        fields = ['id', 'creator', 'destination', 'pickup_location', 'date',
                  'time_window_start', 'time_window_end', 'max_seats',
                  'current_seat_count', 'seats_available', 'creator_seated',
                  'status', 'notes', 'participants', 'completed_by',
                  'completed_at', 'created_at']
        read_only_fields = fields

    def get_seats_available(self, obj):
        return max(obj.max_seats - obj.current_seat_count, 0)


class ChatMessageSerializer(serializers.ModelSerializer):
    user = UserBasicSerializer(read_only=True)

    class Meta:
        model = ChatMessage
        fields = ['id', 'ride', 'user', 'message', 'created_at']
        read_only_fields = fields


class RideDetailSerializer(RideSerializer):
    """Ride with its chat history"""
    messages = ChatMessageSerializer(many=True, read_only=True)

    class Meta(RideSerializer.Meta):
        fields = RideSerializer.Meta.fields + ['messages']
        read_only_fields = fields


class RideRequestSerializer(serializers.Serializer):
    """Serializer for ride requests (match-or-create and explicit create)"""
    destination = serializers.CharField(max_length=255)
    pickup_location = serializers.CharField(max_length=255, required=False, allow_blank=True)
    date = serializers.DateField()
    time_window_start = serializers.TimeField()
    time_window_end = serializers.TimeField()
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True)
    force = serializers.BooleanField(required=False, default=False)

    def validate_destination(self, value):
        if not value.strip():
            raise serializers.ValidationError("Destination is required")
        return value.strip()

    def validate(self, data):
        if data['time_window_end'] <= data['time_window_start']:
            raise serializers.ValidationError({
                'time_window_end': 'Time window end must be after its start'
            })
        return data


class RideListQuerySerializer(serializers.Serializer):
    destination = serializers.CharField(required=False, allow_blank=True)
    date = serializers.DateField(required=False)
    status = serializers.ChoiceField(
        choices=[choice for choice, _ in Ride.STATUS_CHOICES] + ['all'],
        required=False,
    )


class ChatMessageCreateSerializer(serializers.Serializer):
    message = serializers.CharField(max_length=1000)
