"""rc(8) script for running the exporter as a FreeBSD service."""

from __future__ import annotations

RC_SCRIPT = """\
#!/bin/sh

# PROVIDE: jail_exporter
# REQUIRE: LOGIN
# KEYWORD: shutdown
#
# Add the following lines to /etc/rc.conf.local or /etc/rc.conf
# to enable this service:
#
# jail_exporter_enable (bool):          Set to NO by default.
#               Set it to YES to enable jail_exporter.
# jail_exporter_listen_address (string): Address to listen on.
#               Default is "127.0.0.1:9452".
# jail_exporter_telemetry_path (string): Path to expose metrics on.
#               Default is "/metrics".
# jail_exporter_auth_config (string):    Path to HTTP Basic Auth config.
#               Unset by default.
# jail_exporter_args (string):           Extra arguments.

. /etc/rc.subr

name=jail_exporter
rcvar=jail_exporter_enable

load_rc_config $name

: ${jail_exporter_enable:="NO"}
: ${jail_exporter_listen_address:="127.0.0.1:9452"}
: ${jail_exporter_telemetry_path:="/metrics"}
: ${jail_exporter_args:=""}

pidfile=/var/run/jail_exporter.pid
command="/usr/sbin/daemon"
procname="%%PREFIX%%/bin/jail_exporter"

jail_exporter_opts="--web.listen-address=${jail_exporter_listen_address} --web.telemetry-path=${jail_exporter_telemetry_path}"
if [ -n "${jail_exporter_auth_config}" ]; then
    jail_exporter_opts="${jail_exporter_opts} --web.auth-config=${jail_exporter_auth_config}"
fi

command_args="-p ${pidfile} -T ${name} ${procname} ${jail_exporter_opts} ${jail_exporter_args}"

run_rc_command "$1"
"""

DEFAULT_PREFIX = "/usr/local"


def render_rc_script(prefix: str = DEFAULT_PREFIX) -> str:
    """Return the rc(8) script with the installation prefix filled in."""
    return RC_SCRIPT.replace("%%PREFIX%%", prefix)
