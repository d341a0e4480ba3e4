from django.db import models
from django.db.models import Case, Count, F, IntegerField, Q, Value, When
from django.conf import settings


class RideQuerySet(models.QuerySet):

    def open(self):
        """Rides that can still take riders (status waiting or active)."""
        return self.filter(status__in=Ride.JOINABLE_STATUSES)

    def with_occupancy(self):
        """
        Annotate each ride with ``occupancy``: participant rows plus the
        creator when they hold a seat without a participant row.
        """
        return self.annotate(
            participant_rows=Count('participants', distinct=True),
            creator_rows=Count(
                'participants',
                filter=Q(participants__user_id=F('creator_id')),
                distinct=True,
            ),
        ).annotate(
            occupancy=F('participant_rows') + Case(
                When(Q(creator_seated=True) & Q(creator_rows=0), then=Value(1)),
                default=Value(0),
                output_field=IntegerField(),
            )
        )


class Ride(models.Model):
    """A carpool to one destination within a time window on a given day."""

    STATUS_CHOICES = [
        ('waiting', 'Waiting for riders'),
        ('active', 'Active'),
        ('full', 'Full'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]
    JOINABLE_STATUSES = ('waiting', 'active')
    LIVE_STATUSES = ('waiting', 'active', 'full')
    TERMINAL_STATUSES = ('completed', 'cancelled')

    # Ownership moves to the earliest rider when the creator leaves
    creator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='created_rides'
    )

    destination = models.CharField(max_length=255)
    pickup_location = models.CharField(max_length=255, null=True, blank=True)

    date = models.DateField()
    time_window_start = models.TimeField()
    time_window_end = models.TimeField()

    max_seats = models.PositiveIntegerField()
    current_seat_count = models.PositiveIntegerField(default=0)
    # True once the creator occupies a seat (first join or ownership transfer)
    creator_seated = models.BooleanField(default=False)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='waiting')
    notes = models.TextField(null=True, blank=True)

    completed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='completed_rides'
    )
    completed_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = RideQuerySet.as_manager()

    class Meta:
        db_table = 'rides'
        ordering = ['date', 'time_window_start']
        indexes = [
            models.Index(fields=['destination'], name='idx_ride_destination'),
            models.Index(fields=['date'], name='idx_ride_date'),
            models.Index(fields=['status'], name='idx_ride_status'),
        ]

    def __str__(self):
        return f"Ride #{self.id} - {self.destination} on {self.date} - {self.status}"

    def occupant_ids(self):
        """User ids holding a seat, in joining order (seated creator first)."""
        ids = list(
            self.participants.order_by('joined_at', 'id').values_list('user_id', flat=True)
        )
        if self.creator_seated and self.creator_id not in ids:
            ids.insert(0, self.creator_id)
        return ids

    def occupancy(self):
        return len(self.occupant_ids())

    def is_occupant(self, user_id):
        return user_id in self.occupant_ids()


class RideParticipant(models.Model):
    """A seat taken in a ride."""

    ride = models.ForeignKey(
        Ride,
        on_delete=models.CASCADE,
        related_name='participants'
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='ride_participations'
    )

    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'ride_participants'
        ordering = ['joined_at', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['ride', 'user'],
                name='unique_ride_participant'
            )
        ]

    def __str__(self):
        return f"{self.user} in ride {self.ride_id}"


class ChatMessage(models.Model):
    """Append-only ride room chat message."""

    ride = models.ForeignKey(
        Ride,
        on_delete=models.CASCADE,
        related_name='messages'
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='ride_messages'
    )

    message = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'chat_messages'
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['ride', 'created_at'], name='idx_message_ride_time'),
        ]

    def __str__(self):
        return f"Message #{self.id} in ride {self.ride_id}"


class PopularDestination(models.Model):
    destination = models.CharField(max_length=255, unique=True)
    count = models.PositiveIntegerField(default=0)
    last_used = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'popular_destinations'
        ordering = ['-count', 'destination']

    def __str__(self):
        return f"{self.destination} ({self.count})"
