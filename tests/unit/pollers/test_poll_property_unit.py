from datetime import date
from unittest.mock import MagicMock, patch

import pytest

from sync_beds24.db.readers.connections import ConnectionRecord
from sync_beds24.errors import ClientError, PayloadError
from sync_beds24.network.client import ApiResponse
from sync_beds24.pollers.calendar import poll_calendar
from sync_beds24.pollers.property import poll_property

CONNECTION = ConnectionRecord(
    id="conn-1", hotel_id="hotel-1", property_id="1001", read_secret_name="READ"
)


@pytest.mark.unit
@patch("sync_beds24.pollers.property.call")
def test_poll_property_returns_room_types(mock_call: MagicMock) -> None:
    mock_call.return_value = ApiResponse(
        status_code=200,
        data={"data": [{"id": 1001, "roomTypes": [{"id": 501, "name": "Double", "qty": 3}]}]},
    )

    prop = poll_property(MagicMock(), CONNECTION)

    assert prop.id == 1001
    assert [(r.id, r.qty) for r in prop.room_types] == [(501, 3)]
    assert mock_call.call_args.kwargs["params"] == {"id": "1001", "includeAllRooms": "true"}


@pytest.mark.unit
@patch("sync_beds24.pollers.property.call")
def test_poll_property_unknown_property(mock_call: MagicMock) -> None:
    """
    An empty result means Beds24 does not know the property.
    """
    mock_call.return_value = ApiResponse(status_code=200, data={"data": []})

    with pytest.raises(ClientError):
        poll_property(MagicMock(), CONNECTION)


@pytest.mark.unit
@patch("sync_beds24.pollers.property.call")
def test_poll_property_malformed(mock_call: MagicMock) -> None:
    mock_call.return_value = ApiResponse(status_code=200, data={"data": [{"name": "no id"}]})

    with pytest.raises(PayloadError):
        poll_property(MagicMock(), CONNECTION)


@pytest.mark.unit
@patch("sync_beds24.pollers.calendar.fetch_all_pages")
def test_poll_calendar_skips_call_without_rooms(mock_fetch: MagicMock) -> None:
    assert poll_calendar(MagicMock(), CONNECTION, [], date(2025, 1, 1), date(2025, 1, 2)) == []
    mock_fetch.assert_not_called()
