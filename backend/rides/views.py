from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from services.matching import find_matches
from services.ride_management import (
    request_ride,
    create_ride,
    join_ride,
    leave_ride,
    complete_ride,
    delete_ride,
    list_rides,
    get_ride,
    get_popular_destinations,
    get_admin_stats,
    list_messages,
    post_message,
    RideError,
    RideNotFoundError,
    RideConflictError,
    RideForbiddenError,
    RideValidationError,
)
from .permissions import IsAdminRole
from .serializers import (
    RideSerializer,
    RideDetailSerializer,
    RideRequestSerializer,
    RideListQuerySerializer,
    ChatMessageSerializer,
    ChatMessageCreateSerializer,
)

ERROR_STATUS = (
    (RideNotFoundError, status.HTTP_404_NOT_FOUND),
    (RideConflictError, status.HTTP_409_CONFLICT),
    (RideForbiddenError, status.HTTP_403_FORBIDDEN),
    (RideValidationError, status.HTTP_400_BAD_REQUEST),
)


def ride_error_response(exc: RideError) -> Response:
    """Translate a service-layer error into an API response."""
    for error_class, status_code in ERROR_STATUS:
        if isinstance(exc, error_class):
            return Response({"error": str(exc)}, status=status_code)
    return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)


def _ride_response(ride, request, **extra):
    return {
        **extra,
        "ride": RideSerializer(ride, context={"request": request}).data,
    }


# ==================== Ride Requests ====================

class RideListCreateView(APIView):
    """
    GET:  Browse rides (filters: destination, date, status; default waiting or active)
    POST: Create a ride without matching first
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        query = RideListQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        rides = list_rides(
            destination=query.validated_data.get("destination"),
            date=query.validated_data.get("date"),
            status=query.validated_data.get("status"),
        )
        serializer = RideSerializer(rides, many=True, context={"request": request})
        return Response({"count": len(serializer.data), "rides": serializer.data})

    def post(self, request):
        serializer = RideRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            result = create_ride(
                creator=request.user,
                destination=data["destination"],
                date=data["date"],
                time_window_start=data["time_window_start"],
                time_window_end=data["time_window_end"],
                pickup_location=data.get("pickup_location"),
                notes=data.get("notes"),
            )
        except RideError as exc:
            return ride_error_response(exc)

        return Response(
            _ride_response(result.ride, request, message=result.message),
            status=status.HTTP_201_CREATED,
        )


class RideRequestView(APIView):
    """
    POST: Submit a ride request.

    Returns compatible rides to choose from (200, ``matched: true``) or,
    when nothing fits or ``force`` is set, the newly created ride (201).
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = RideRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            result = request_ride(
                user=request.user,
                destination=data["destination"],
                date=data["date"],
                time_window_start=data["time_window_start"],
                time_window_end=data["time_window_end"],
                pickup_location=data.get("pickup_location"),
                notes=data.get("notes"),
                force=data.get("force", False),
            )
        except RideError as exc:
            return ride_error_response(exc)

        if result.matches:
            return Response({
                "matched": True,
                "message": result.message,
                "matches": RideSerializer(result.matches, many=True, context={"request": request}).data,
            })

        return Response(
            _ride_response(result.ride, request, matched=False, message=result.message),
            status=status.HTTP_201_CREATED,
        )


class RideMatchesView(APIView):
    """POST: Preview matching rides without creating anything."""
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = RideRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        matches = find_matches(
            data["destination"],
            data["time_window_start"],
            data["time_window_end"],
            data["date"],
            requester_id=request.user.id,
        )
        return Response({
            "count": len(matches),
            "matches": RideSerializer(matches, many=True, context={"request": request}).data,
        })


# ==================== Single Ride ====================

class RideDetailView(APIView):
    """
    GET:    Ride with participants and chat history
    DELETE: Creator deletes a ride nobody else has joined
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, ride_id: int):
        try:
            ride = get_ride(ride_id)
        except RideError as exc:
            return ride_error_response(exc)

        serializer = RideDetailSerializer(ride, context={"request": request})
        return Response({"ride": serializer.data})

    def delete(self, request, ride_id: int):
        try:
            result = delete_ride(request.user, ride_id)
        except RideError as exc:
            return ride_error_response(exc)

        return Response({"message": result.message, "ride_id": ride_id})


class RideJoinView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, ride_id: int):
        try:
            result = join_ride(request.user, ride_id)
        except RideError as exc:
            return ride_error_response(exc)

        return Response(_ride_response(result.ride, request, message=result.message))


class RideLeaveView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, ride_id: int):
        try:
            result = leave_ride(request.user, ride_id)
        except RideError as exc:
            return ride_error_response(exc)

        return Response(_ride_response(result.ride, request, message=result.message))


class RideCompleteView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, ride_id: int):
        try:
            result = complete_ride(request.user, ride_id)
        except RideError as exc:
            return ride_error_response(exc)

        return Response(_ride_response(result.ride, request, message=result.message))


class RideMessagesView(APIView):
    """
    GET:  Chat history for a ride (members only)
    POST: Send a chat message (HTTP fallback for the WebSocket room)
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, ride_id: int):
        try:
            messages = list_messages(request.user, ride_id)
        except RideError as exc:
            return ride_error_response(exc)

        serializer = ChatMessageSerializer(messages, many=True)
        return Response({"count": len(serializer.data), "messages": serializer.data})

    def post(self, request, ride_id: int):
        serializer = ChatMessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            message = post_message(request.user, ride_id, serializer.validated_data["message"])
        except RideError as exc:
            return ride_error_response(exc)

        return Response(ChatMessageSerializer(message).data, status=status.HTTP_201_CREATED)


# ==================== Destinations & Stats ====================

class PopularDestinationsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response({"destinations": get_popular_destinations()})


class AdminStatsView(APIView):
    """GET: Aggregate ride statistics (admins only)."""
    permission_classes = [IsAuthenticated, IsAdminRole]

    def get(self, request):
        return Response(get_admin_stats())
