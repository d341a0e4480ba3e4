from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Campus user. Admins can see aggregate ride statistics."""
    ROLE_CHOICES = [
        ('user', 'Student'),
        ('admin', 'Administrator'),
    ]

    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default='user')
    name = models.CharField(max_length=100, blank=True)
    email = models.EmailField(unique=True)

    class Meta:
        db_table = 'users'

    @property
    def display_name(self):
        return self.name or self.username

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"
