"""
Message type registry: message id -> human-readable label.

Labels name the XML element the message carries where one is known.
Lookup only; an id missing from the table is labelled "unknown" and is
never a decode error.
"""

from __future__ import annotations

from types import MappingProxyType

UNKNOWN_LABEL = "unknown"

MSG_ID_LOGIN = 1
MSG_ID_PING = 93

MESSAGE_TYPES = MappingProxyType({
    1: "login",  # <Encryption> <LoginUser>/<LoginNet> <DeviceInfo>/<StreamInfoList>
    2: "logout",
    3: "<Preview> (video)",
    4: "<Preview> (stop)",
    5: "<FileInfoList> (replay)",
    7: "<FileInfoList> (stop)",
    8: "<FileInfoList> (DL Video)",
    10: "<TalkAbility>",
    13: "<FileInfoList> (download)",
    14: "<FileInfoList>",
    15: "<FileInfoList>",
    16: "<FileInfoList>",
    18: "<PtzControl>",
    23: "Reboot",
    25: "<VideoInput> (write)",
    26: "<VideoInput>",  # <InputAdvanceCfg>
    31: "Start Motion Alarm",
    33: "<AlarmEventList>",
    36: "<ServerPort> (write)",
    37: "<ServerPort>",  # <HttpPort>/<RtspPort>/<OnvifPort>/<HttpsPort>/<RtmpPort>
    38: "<Ntp>",
    39: "<Ntp> (write)",
    40: "<Ddns>",
    41: "<Ddns> (write)",
    42: "<Email>",
    43: "<Email> (write)",
    44: "<OsdChannelName>",  # <OsdDatetime>
    45: "<OsdChannelName> (write)",
    46: "<MD>",
    47: "<MD> (write)",
    50: "<VideoLoss>",
    51: "<VideoLoss> (write)",
    52: "<Shelter> (priv mask)",
    53: "<Shelter> (write)",
    54: "<RecordCfg>",
    55: "<RecordCfg> (write)",
    56: "<Compression>",
    57: "<Compression> (write)",
    58: "<AbilitySupport>",  # <UserList>
    59: "<UserList> (write)",
    65: "<ConfigFileInfo> (Export)",
    66: "<ConfigFileInfo> (Import)",
    67: "<ConfigFileInfo> (FW Upgrade)",
    68: "<Ftp>",
    69: "<Ftp> (write)",
    70: "<FtpTask>",
    71: "<FtpTask> (write)",
    76: "<Ip>",  # <Dhcp>/<AutoDNS>/<Dns>
    77: "<Ip> (write)",
    78: "<VideoInput> (IPC desc)",
    79: "<Serial> (ptz)",
    80: "<VersionInfo>",
    81: "<Record> (schedule)",
    82: "<Record> (write)",
    83: "<HandleException>",
    84: "<HandleException> (write)",
    91: "<DisplayOutput>",
    92: "<DisplayOutput> (write)",
    93: "<LinkType>",
    97: "<Upnp>",
    98: "<Upnp> (write)",
    99: "<Restore> (factory default)",
    100: "<AutoReboot> (write)",
    101: "<AutoReboot>",
    102: "<HDDInfoList>",
    103: "<HddInitList> (format)",
    104: "<SystemGeneral>",
    105: "<SystemGeneral> (write)",
    106: "<Dst>",
    107: "<Dst> (write)",
    108: "<ConfigFileInfo> (log)",
    114: "<Uid>",
    115: "<WifiSignal>",
    120: "<OnlineUserList>",
    122: "<PerformanceInfo>",
    123: "<ReplaySeek>",
    132: "<VideoInput>",  # <InputAdvanceCfg>
    133: "<RfAlarm>",
    141: "<Email> (test)",
    142: "<DayRecords>",
    145: "<ChannelInfoList>",
    146: "<StreamInfoList>",
    151: "<AbilityInfo>",
    190: "PTZ Preset",
    194: "<Ftp> (test)",
    199: "<Support>",
    208: "<LedState>",
    209: "<LedState> (write)",
    210: "<PTOP>",
    211: "<PTOP> (write)",
    216: "<EmailTask> (write)",
    217: "<EmailTask>",
    218: "<PushTask> (write)",
    219: "<PushTask>",
    228: "<Crop>",
    229: "<Crop> (write)",
    230: "<cropSnap>",
    252: "<BatteryInfo>",
    272: "<findAlarmVideo>",
    273: "<alarmVideoInfo>",
    274: "<findAlarmVideo>",
})


def message_type_label(message_type: int) -> str:
    return MESSAGE_TYPES.get(message_type, UNKNOWN_LABEL)
