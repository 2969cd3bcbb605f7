"""Restaurant voice reservations: Twilio speech turns in, validated bookings out."""

__version__ = "0.1.0"
