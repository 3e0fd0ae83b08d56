"""
Core constants for blemirror.

BlueZ object-bus names, GATT flag names and the numeric result codes carried
by every :class:`blemirror.core.errors.BlemirrorError`.
"""

# D-Bus Core Constants
DBUS_PROPERTIES = "org.freedesktop.DBus.Properties"
DBUS_OM_IFACE = "org.freedesktop.DBus.ObjectManager"

# BlueZ Core Constants
BLUEZ_SERVICE_NAME = "org.bluez"
BLUEZ_NAMESPACE = "/org/bluez/"
ROOT_PATH = "/"

# BlueZ Interface Constants
ADAPTER_INTERFACE = BLUEZ_SERVICE_NAME + ".Adapter1"
DEVICE_INTERFACE = BLUEZ_SERVICE_NAME + ".Device1"

# GATT Interface Constants
GATT_SERVICE_INTERFACE = BLUEZ_SERVICE_NAME + ".GattService1"
GATT_CHARACTERISTIC_INTERFACE = BLUEZ_SERVICE_NAME + ".GattCharacteristic1"

# Signal names
SIGNAL_INTERFACES_ADDED = "InterfacesAdded"
SIGNAL_INTERFACES_REMOVED = "InterfacesRemoved"
SIGNAL_PROPERTIES_CHANGED = "PropertiesChanged"

# GATT characteristic flags (as reported in the *Flags* property)
FLAG_READ = "read"
FLAG_WRITE = "write"
FLAG_WRITE_WITHOUT_RESPONSE = "write-without-response"
FLAG_NOTIFY = "notify"
FLAG_INDICATE = "indicate"

# Well-known D-Bus error names
DBUS_ERROR_NO_REPLY = "org.freedesktop.DBus.Error.NoReply"
DBUS_ERROR_TIMEOUT = "org.freedesktop.DBus.Error.Timeout"
DBUS_ERROR_UNKNOWN_OBJECT = "org.freedesktop.DBus.Error.UnknownObject"
DBUS_ERROR_SERVICE_UNKNOWN = "org.freedesktop.DBus.Error.ServiceUnknown"
BLUEZ_ERROR_IN_PROGRESS = "org.bluez.Error.InProgress"
BLUEZ_ERROR_NOT_PERMITTED = "org.bluez.Error.NotPermitted"
BLUEZ_ERROR_NOT_AUTHORIZED = "org.bluez.Error.NotAuthorized"
BLUEZ_ERROR_NOT_SUPPORTED = "org.bluez.Error.NotSupported"
BLUEZ_ERROR_NOT_CONNECTED = "org.bluez.Error.NotConnected"
BLUEZ_ERROR_FAILED = "org.bluez.Error.Failed"

# Result/Error Codes
RESULT_OK = 0
RESULT_ERR = 1
RESULT_ERR_NOT_CONNECTED = 2
RESULT_ERR_NOT_SUPPORTED = 3
RESULT_ERR_SERVICES_NOT_RESOLVED = 4
RESULT_ERR_WRONG_STATE = 5
RESULT_ERR_ACCESS_DENIED = 6
RESULT_ERR_NOT_FOUND = 9
RESULT_ERR_NO_REPLY = 14
RESULT_ERR_ACTION_IN_PROGRESS = 16
RESULT_ERR_UNKNOWN_OBJECT = 18
RESULT_ERR_UNKNOWN_CONNECT_FAILURE = 20
RESULT_ERR_METHOD_CALL_FAIL = 21
RESULT_ERR_NOTIFY_NOT_PERMITTED = 25
RESULT_ERR_NO_ADAPTER = 27
RESULT_ERR_POWER = 28
