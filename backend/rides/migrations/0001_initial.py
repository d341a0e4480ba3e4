import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='PopularDestination',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('destination', models.CharField(max_length=255, unique=True)),
                ('count', models.PositiveIntegerField(default=0)),
                ('last_used', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'popular_destinations',
                'ordering': ['-count', 'destination'],
            },
        ),
        migrations.CreateModel(
            name='Ride',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('destination', models.CharField(max_length=255)),
                ('pickup_location', models.CharField(blank=True, max_length=255, null=True)),
                ('date', models.DateField()),
                ('time_window_start', models.TimeField()),
                ('time_window_end', models.TimeField()),
                ('max_seats', models.PositiveIntegerField()),
                ('current_seat_count', models.PositiveIntegerField(default=0)),
                ('creator_seated', models.BooleanField(default=False)),
                ('status', models.CharField(choices=[('waiting', 'Waiting for riders'), ('active', 'Active'), ('full', 'Full'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], default='waiting', max_length=20)),
                ('notes', models.TextField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('completed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='completed_rides', to=settings.AUTH_USER_MODEL)),
                ('creator', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='created_rides', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'rides',
                'ordering': ['date', 'time_window_start'],
                'indexes': [
                    models.Index(fields=['destination'], name='idx_ride_destination'),
                    models.Index(fields=['date'], name='idx_ride_date'),
                    models.Index(fields=['status'], name='idx_ride_status'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ChatMessage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('message', models.TextField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('ride', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='messages', to='rides.ride')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ride_messages', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'chat_messages',
                'ordering': ['created_at', 'id'],
                'indexes': [
                    models.Index(fields=['ride', 'created_at'], name='idx_message_ride_time'),
                ],
            },
        ),
        migrations.CreateModel(
            name='RideParticipant',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('joined_at', models.DateTimeField(auto_now_add=True)),
                ('ride', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='participants', to='rides.ride')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ride_participations', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'ride_participants',
                'ordering': ['joined_at', 'id'],
                'constraints': [
                    models.UniqueConstraint(fields=('ride', 'user'), name='unique_ride_participant'),
                ],
            },
        ),
    ]
