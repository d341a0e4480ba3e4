from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework_simplejwt.tokens import RefreshToken

from services.ride_management import get_user_ride_history, get_user_stats
from .serializers import RegisterSerializer, LoginSerializer, UserSerializer


def auth_response(user, message, status_code=status.HTTP_200_OK):
    """User payload plus a fresh JWT pair."""
    refresh = RefreshToken.for_user(user)
    return Response({
        "message": message,
        "user": UserSerializer(user).data,
        "tokens": {
            "refresh": str(refresh),
            "access": str(refresh.access_token),
        },
    }, status=status_code)


class RegisterView(APIView):
    """
    Create a student account and sign in.

    POST Body:
    {
        "username": "asha",
        "email": "asha@student.nitandhra.ac.in",
        "password": "password123",
        "name": "Asha Rao"
    }
    """
    permission_classes = (AllowAny,)
    authentication_classes = []

    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        return auth_response(user, "User registered successfully", status.HTTP_201_CREATED)


class LoginView(APIView):
    """
    Exchange username and password for a JWT pair.

    Refresh an expired access token at ``/api/auth/token/refresh/``.
    """
    permission_classes = (AllowAny,)
    authentication_classes = []

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return auth_response(serializer.validated_data, "Login successful")


class MeView(APIView):
    """GET: current user's profile, recent ride history and ride counts."""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response({
            "user": UserSerializer(request.user).data,
            "ride_history": get_user_ride_history(request.user),
            "stats": get_user_stats(request.user),
        })
