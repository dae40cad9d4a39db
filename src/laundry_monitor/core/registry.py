"""
Sensor and machine registry.

The registry owns the sensor -> channel -> machine topology, not the
classification behavior. The ingestion pipeline only consumes it through the
SensorLinkResolver contract; SensorRegistry is the in-memory implementation.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple, Union

from laundry_monitor.classifiers.models import MachineType
from laundry_monitor.core.models import Machine, Sensor, SensorLink
from laundry_monitor.errors import InvalidArgument, NotFound

logger = logging.getLogger(__name__)


def normalize_mac(mac_address: str) -> str:
    """Normalize a MAC address for storage and lookup."""
    return mac_address.strip().upper()


class SensorLinkResolver(ABC):
    """Resolves sensor nodes and their channel bindings."""

    @abstractmethod
    def find_sensor_by_mac(self, mac_address: str) -> Optional[Sensor]:
        """
        Find a sensor by MAC address.

        Args:
            mac_address: MAC address as sent by the node

        Returns:
            The Sensor or None if not registered
        """
        pass

    @abstractmethod
    def find_links_for_sensor(self, sensor_id: int) -> List[SensorLink]:
        """
        Get every channel binding of a sensor.

        Args:
            sensor_id: The sensor ID

        Returns:
            List of SensorLinks, each resolved with its Machine
        """
        pass


class SensorRegistry(SensorLinkResolver):
    """
    In-memory registry of sensors, machines, and sensor links.

    Responsibilities:
    - Register sensors and assign them to rooms
    - Store machines (including their summary state)
    - Maintain (sensor, source, local_id) -> machine bindings

    Does NOT classify readings.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._sensors: Dict[int, Sensor] = {}
        self._sensor_by_mac: Dict[str, int] = {}
        self._machines: Dict[int, Machine] = {}
        self._links: Dict[int, Dict[Tuple[str, int], SensorLink]] = {}
        self._next_sensor_id = 1
        self._next_machine_id = 1
        self._lock = threading.RLock()

    # Sensors

    def register_sensor(
        self,
        mac_address: str,
        room_id: Optional[str] = None,
        api_key: Optional[str] = None,
    ) -> Sensor:
        """
        Register a new sensor node.

        Args:
            mac_address: Hardware MAC address
            room_id: Optional room the node is installed in
            api_key: Optional credential for the node

        Returns:
            The created Sensor

        Raises:
            InvalidArgument: If the MAC is blank or already registered
        """
        if not mac_address or not mac_address.strip():
            raise InvalidArgument("macAddress is required")

        mac = normalize_mac(mac_address)
        with self._lock:
            if mac in self._sensor_by_mac:
                raise InvalidArgument(f"Sensor with macAddress '{mac}' already exists")

            sensor = Sensor(
                sensor_id=self._next_sensor_id,
                mac_address=mac,
                room_id=room_id,
                api_key=api_key,
            )
            self._next_sensor_id += 1
            self._sensors[sensor.sensor_id] = sensor
            self._sensor_by_mac[mac] = sensor.sensor_id
            self._links[sensor.sensor_id] = {}

        logger.info(f"Registered sensor {sensor.sensor_id} ({mac})")
        return sensor

    def get_sensor(self, sensor_id: int) -> Optional[Sensor]:
        """Get a sensor by ID, or None if not found."""
        return self._sensors.get(sensor_id)

    def all_sensors(self) -> List[Sensor]:
        """Get all sensors."""
        return list(self._sensors.values())

    def find_sensor_by_mac(self, mac_address: str) -> Optional[Sensor]:
        if not mac_address:
            return None
        sensor_id = self._sensor_by_mac.get(normalize_mac(mac_address))
        if sensor_id is None:
            return None
        return self._sensors.get(sensor_id)

    def update_sensor(
        self,
        sensor_id: int,
        api_key: Optional[str] = None,
        room_id: Optional[str] = None,
    ) -> Sensor:
        """
        Set a sensor's credential and/or room.

        Args:
            sensor_id: The sensor ID
            api_key: New API key (None to keep current)
            room_id: New room ID (None to keep current, empty string to clear)

        Returns:
            The updated Sensor

        Raises:
            InvalidArgument: If neither field is given
            NotFound: If the sensor doesn't exist
        """
        if api_key is None and room_id is None:
            raise InvalidArgument("apiKey or roomId is required")

        with self._lock:
            sensor = self._sensors.get(sensor_id)
            if not sensor:
                raise NotFound(f"Sensor '{sensor_id}' does not exist")

            if api_key is not None:
                sensor.api_key = api_key
            if room_id is not None:
                sensor.room_id = room_id if room_id != "" else None

        logger.info(f"Updated sensor {sensor_id} (room={sensor.room_id})")
        return sensor

    # Machines

    def create_machine(
        self,
        name: str,
        type: Union[MachineType, str],
        label: Optional[str] = None,
        room_id: Optional[str] = None,
    ) -> Machine:
        """
        Create a machine.

        Args:
            name: Human-readable name
            type: MachineType or its value ("washer" / "dryer")
            label: Optional short label
            room_id: Optional room ID

        Returns:
            The created Machine

        Raises:
            InvalidArgument: If the name is blank or the type is unknown
        """
        if not name or not name.strip():
            raise InvalidArgument("Machine name is required")

        try:
            machine_type = MachineType(type)
        except ValueError:
            raise InvalidArgument(f"Unknown machine type '{type}'") from None

        with self._lock:
            machine = Machine(
                machine_id=self._next_machine_id,
                name=name,
                type=machine_type,
                label=label,
                room_id=room_id,
            )
            self._next_machine_id += 1
            self._machines[machine.machine_id] = machine

        logger.info(f"Created machine {machine.machine_id}: {name} ({machine_type.value})")
        return machine

    def get_machine(self, machine_id: int) -> Optional[Machine]:
        """Get a machine by ID, or None if not found."""
        return self._machines.get(machine_id)

    def all_machines(self) -> List[Machine]:
        """Get all machines."""
        return list(self._machines.values())

    def machines_in_room(self, room_id: str) -> List[Machine]:
        """Get all machines standing in a room."""
        return [m for m in self._machines.values() if m.room_id == room_id]

    def delete_machine(self, machine_id: int) -> List[SensorLink]:
        """
        Delete a machine and every link pointing at it.

        Args:
            machine_id: The machine ID

        Returns:
            The removed links

        Raises:
            NotFound: If the machine doesn't exist
        """
        with self._lock:
            if machine_id not in self._machines:
                raise NotFound(f"Machine '{machine_id}' does not exist")

            removed = []
            for channels in self._links.values():
                for channel, link in list(channels.items()):
                    if link.machine_id == machine_id:
                        removed.append(channels.pop(channel))

            del self._machines[machine_id]

        logger.info(f"Deleted machine {machine_id} ({len(removed)} link(s) removed)")
        return removed

    # Links

    def link(self, sensor_id: int, source: str, local_id: int, machine_id: int) -> SensorLink:
        """
        Bind a sensor channel to a machine.

        Args:
            sensor_id: The sensor ID
            source: Channel source reported by the node
            local_id: Channel local ID reported by the node
            machine_id: The machine the channel measures

        Returns:
            The created SensorLink

        Raises:
            InvalidArgument: If the channel is already linked on this sensor
            NotFound: If the sensor or machine doesn't exist
        """
        if source is None or local_id is None or machine_id is None:
            raise InvalidArgument("source, localId, and machineId are required")

        with self._lock:
            if sensor_id not in self._sensors:
                raise NotFound(f"Sensor '{sensor_id}' does not exist")
            machine = self._machines.get(machine_id)
            if not machine:
                raise NotFound(f"Machine '{machine_id}' does not exist")

            channels = self._links[sensor_id]
            if (source, local_id) in channels:
                raise InvalidArgument(
                    f"Channel ({source}, {local_id}) of sensor {sensor_id} is already linked"
                )

            sensor_link = SensorLink(
                sensor_id=sensor_id,
                source=source,
                local_id=local_id,
                machine=machine,
            )
            channels[(source, local_id)] = sensor_link

        logger.debug(f"Linked sensor {sensor_id} ({source}, {local_id}) -> machine {machine_id}")
        return sensor_link

    def unlink(self, sensor_id: int, source: str, local_id: int) -> SensorLink:
        """
        Remove a channel binding.

        Raises:
            NotFound: If the binding doesn't exist
        """
        with self._lock:
            channels = self._links.get(sensor_id, {})
            sensor_link = channels.pop((source, local_id), None)

        if sensor_link is None:
            raise NotFound(f"No link for sensor {sensor_id} channel ({source}, {local_id})")

        logger.debug(f"Unlinked sensor {sensor_id} ({source}, {local_id})")
        return sensor_link

    def find_links_for_sensor(self, sensor_id: int) -> List[SensorLink]:
        with self._lock:
            return list(self._links.get(sensor_id, {}).values())

    def links_for_machine(self, machine_id: int) -> List[SensorLink]:
        """Get every channel binding that points at a machine."""
        with self._lock:
            return [
                sensor_link
                for channels in self._links.values()
                for sensor_link in channels.values()
                if sensor_link.machine_id == machine_id
            ]
