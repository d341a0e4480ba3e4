"""Tells what to show in the Django admin interface for rides app"""

from django.contrib import admin
from .models import Ride, RideParticipant, ChatMessage, PopularDestination


class RideParticipantInline(admin.TabularInline):
    model = RideParticipant
    extra = 0
    readonly_fields = ['joined_at']


@admin.register(Ride)
class RideAdmin(admin.ModelAdmin):
    """Ride admin"""
    list_display = ['id', 'destination', 'creator', 'date', 'time_window_start', 'time_window_end',
                    'current_seat_count', 'max_seats', 'status']
    list_filter = ['status', 'date']
    search_fields = ['destination', 'creator__username', 'pickup_location']
    readonly_fields = ['current_seat_count', 'created_at', 'updated_at', 'completed_at']
    date_hierarchy = 'date'
    inlines = [RideParticipantInline]


@admin.register(ChatMessage)
class ChatMessageAdmin(admin.ModelAdmin):
    list_display = ("ride", "user", "created_at")
    search_fields = ("ride__id", "user__username", "message")


@admin.register(PopularDestination)
class PopularDestinationAdmin(admin.ModelAdmin):
    list_display = ("destination", "count", "last_used")
