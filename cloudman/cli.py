#!/usr/bin/env python3
import os
import sys
import logging
import argparse
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple

from cloudman import __version__, settings
from cloudman import database, docker_ops, ldap, network, php, repair, terminate, tls
from cloudman.backup import BackupError, BackupManager, format_backup_timestamp, user_count_from_dump
from cloudman.nextcloud import Nextcloud, OCCError
from cloudman.redis_ops import RedisManager
from cloudman.refresh import Refresher
from cloudman.shell import CommandError, service_state
from cloudman.smtp import DEFAULT_PORTS, PRESETS, SMTPRelay, SMTPSettings
from cloudman.store import ConfigStore, ConfigStoreError, ConfigWriteError, load_or_empty
from cloudman.sysinfo import refresh_facts
from cloudman.updates import DownloadError, Updater, UpdateError

log = logging.getLogger(settings.LOGGER_NAME)

# Everything a single menu action may raise; caught at the action boundary
ACTION_ERRORS = (
    CommandError,
    OCCError,
    DownloadError,
    UpdateError,
    BackupError,
    tls.TLSError,
    ConfigStoreError,
    OSError,
    ValueError,
)

STATUS_UNITS = ["postgresql", "redis-server", "apache2", "docker"]


# ---------------------------
# Helpers / UI
# ---------------------------

def clear():
    os.system("cls" if os.name == "nt" else "clear")

def pause():
    input("\nPress Enter to continue...")

def ask(prompt: str, default: Optional[str] = None) -> str:
    sfx = f" [{default}]" if default else ""
    val = input(f"{prompt}{sfx}: ").strip()
    return val or (default or "")

def confirm(prompt: str, default: str = "no") -> bool:
    return ask(f"{prompt} (yes/no)", default).lower() in ("y", "yes")

def attempt(fn: Callable[..., Any], *args, **kwargs) -> Tuple[bool, Any]:
    """Run one action; failures are printed, never raised into the menu loop."""
    try:
        return True, fn(*args, **kwargs)
    except ACTION_ERRORS as exc:
        log.error("%s failed: %s", getattr(fn, "__name__", "action"), exc)
        print(f"Failed: {exc}")
        return False, None

def pick(items: Sequence[str], title: str) -> Optional[str]:
    if not items:
        print("Nothing to choose from.")
        return None
    print(f"\n{title}")
    for i, item in enumerate(items, 1):
        print(f"{i}) {item}")
    print(f"{len(items) + 1}) Abort")
    idx = ask("Number", str(len(items) + 1))
    try:
        i = int(idx)
        if 1 <= i <= len(items):
            return items[i - 1]
    except ValueError:
        pass
    if idx != str(len(items) + 1):
        print("Invalid selection.")
    return None

def show(text: str, empty: str = "(no output)"):
    print(text if text else empty)


# ---------------------------
# Welcome screen
# ---------------------------

def welcome(store: ConfigStore, app_updates: Refresher):
    clear()
    print(f"=== Cloudman {__version__} - Nextcloud instance manager ===")
    print(f"LAN: {store.get('ADDRESS', '') or 'unknown'}    WAN: {store.get('WANIP4', '') or 'unknown'}")
    print(f"Ubuntu: {store.get('DISTRO', '') or '?'} ({store.get('CODENAME', '') or '?'})    "
          f"PostgreSQL: {store.get('PSQLVER', '') or 'not found'}")
    print("  ".join(f"[{unit}: {service_state(unit)}]" for unit in STATUS_UNITS))
    print(f"App updates: {app_updates.status_line()}")
    print("")


# ---------------------------
# Update Nextcloud
# ---------------------------

def _maintenance_menu(nc: Nextcloud):
    ok, enabled = attempt(nc.maintenance_enabled)
    if not ok:
        return
    print(f"\nMaintenance mode is currently {'ENABLED' if enabled else 'disabled'}.")
    print("1) Enable maintenance mode")
    print("2) Disable maintenance mode")
    print("3) Abort")
    sub = ask("Choose", "3")
    if sub == "1":
        if enabled:
            print("Maintenance mode is already enabled.")
        elif attempt(nc.set_maintenance, True)[0]:
            print("Maintenance mode enabled.")
    elif sub == "2":
        if not enabled:
            print("Maintenance mode is already disabled.")
        elif attempt(nc.set_maintenance, False)[0]:
            print("Maintenance mode disabled.")

def _update_loop(store: ConfigStore, nc: Nextcloud):
    # pylint: disable=too-many-branches
    updater = Updater(nc, backup_dir=str(store.get("BACKUP", settings.BACKUP)))
    while True:
        clear()
        print("=== Nextcloud Update ===")
        print("1) Run full update")
        print("2) Maintenance mode")
        print("3) Check free space")
        print("4) Back up config and apps")
        print("5) Download latest Nextcloud")
        print("6) Extract Nextcloud")
        print("7) Run Nextcloud upgrade")
        print("8) Clean up download")
        print("9) Back")
        sub = ask("Choose", "9")

        if sub == "1":
            if confirm("Run the full update now? The site goes into maintenance mode", "no"):
                if attempt(updater.run_full_update)[0]:
                    print("Nextcloud update completed successfully.")
            pause()
        elif sub == "2":
            _maintenance_menu(nc)
            pause()
        elif sub == "3":
            ok, free = attempt(updater.check_free_space)
            if ok:
                print(f"Sufficient free space for backup ({free:.1f} GB free).")
            pause()
        elif sub == "4":
            ok, done = attempt(updater.backup_config_and_apps)
            if ok:
                print(f"Backed up {', '.join(done)} to {updater.backup_dir}")
            pause()
        elif sub == "5":
            ok, path = attempt(updater.download_release)
            if ok:
                print(f"Nextcloud package downloaded to {path}")
            pause()
        elif sub == "6":
            if attempt(updater.extract_release)[0]:
                print(f"Extraction completed into {Path(nc.ncpath).parent}")
            pause()
        elif sub == "7":
            ok, out = attempt(updater.upgrade)
            if ok:
                show(out)
                print("Nextcloud upgrade completed.")
            pause()
        elif sub == "8":
            print("Cleanup completed." if updater.cleanup() else "No downloaded files found to clean.")
            pause()
        elif sub == "9":
            break


# ---------------------------
# Apps
# ---------------------------

def _apps_loop(nc: Nextcloud, app_updates: Refresher):
    # pylint: disable=too-many-branches,too-many-statements
    while True:
        clear()
        print("=== Nextcloud Apps ===")
        print(f"[App updates: {app_updates.status_line()}]")
        print("1) List installed apps")
        print("2) Enable app")
        print("3) Disable app")
        print("4) Remove app")
        print("5) Check for app updates")
        print("6) Update apps")
        print("7) Back")
        sub = ask("Choose", "1")

        if sub == "1":
            ok, apps = attempt(nc.list_apps)
            if ok:
                print("\nEnabled:")
                for name, ver in sorted(apps.enabled.items()):
                    print(f"  - {name} {ver}")
                print("Disabled:")
                for name, ver in sorted(apps.disabled.items()):
                    print(f"  - {name} {ver}")
            pause()
        elif sub == "2":
            ok, apps = attempt(nc.list_apps)
            app = pick(sorted(apps.disabled), "Select the app to enable:") if ok else None
            if app and attempt(nc.enable_app, app)[0]:
                print(f"App '{app}' has been enabled.")
            pause()
        elif sub == "3":
            ok, apps = attempt(nc.list_apps)
            app = pick(sorted(apps.enabled), "Select the app to disable:") if ok else None
            if app and attempt(nc.disable_app, app)[0]:
                print(f"App '{app}' has been disabled.")
            pause()
        elif sub == "4":
            ok, apps = attempt(nc.list_apps)
            app = pick(apps.names(), "Select the app to remove:") if ok else None
            if app and confirm(f"Remove '{app}' and its data?", "no"):
                if attempt(nc.remove_app, app)[0]:
                    print(f"App '{app}' has been removed.")
            pause()
        elif sub == "5":
            ok, summary = attempt(nc.update_check)
            if ok:
                for name, ver in sorted(summary.app_updates.items()):
                    print(f"  {name} -> {ver}")
                if summary.core_version:
                    print(f"Nextcloud update available: version {summary.core_version}")
                print(summary.describe())
                app_updates.record(summary.describe())
            pause()
        elif sub == "6":
            print("1) Update all apps")
            print("2) Update a specific app")
            print("3) Abort")
            how = ask("Choose", "3")
            if how == "1":
                if attempt(nc.update_app)[0]:
                    print("All Nextcloud apps updated successfully.")
                    app_updates.refresh(force=True)
            elif how == "2":
                ok, summary = attempt(nc.update_check)
                app = pick(sorted(summary.app_updates), "Select the app to update:") if ok else None
                if app and attempt(nc.update_app, app)[0]:
                    print(f"App '{app}' updated successfully.")
                    app_updates.refresh(force=True)
            pause()
        elif sub == "7":
            break


# ---------------------------
# Repair / settings
# ---------------------------

def _repair_loop(store: ConfigStore, nc: Nextcloud):
    while True:
        clear()
        print("=== Repair Nextcloud ===")
        print("1) Run occ maintenance:repair")
        print("2) Install base dependencies")
        print("3) Update variables (JSON)")
        print("4) Back")
        sub = ask("Choose", "1")

        if sub == "1":
            ok, out = attempt(nc.repair)
            if ok:
                show(out)
            pause()
        elif sub == "2":
            ok, done = attempt(repair.install_dependencies)
            if ok:
                for dep, state in done.items():
                    print(f"{dep}: {state}")
            pause()
        elif sub == "3":
            raw = ask('Enter new data as JSON (e.g. {"DISTRO": "22.04"})')
            ok, keys = attempt(repair.merge_variables, store, raw)
            if ok:
                print(f"Updated: {', '.join(keys) or '(nothing)'}")
            pause()
        elif sub == "4":
            break

def _settings_loop(nc: Nextcloud):
    actions = [
        ("Enable 'Shared' folder for shares", nc.set_share_folder),
        ("Update mimetype list", nc.update_mimetypes),
        ("Hand log rotation to logrotate", nc.enable_logrotate),
        ("Disable user flows", nc.disable_user_flows),
        ("Disable workspaces (Text app)", nc.disable_workspaces),
        ("Set forced logout time (CookieLifetime)", nc.configure_cookie_lifetime),
        ("Check for 0-byte files", nc.check_zero_byte_files),
    ]
    while True:
        clear()
        print("=== Nextcloud Settings ===")
        for i, (label, _) in enumerate(actions, 1):
            print(f"{i}) {label}")
        print(f"{len(actions) + 1}) Back")
        sub = ask("Choose", str(len(actions) + 1))
        if sub == str(len(actions) + 1):
            break
        try:
            i = int(sub)
        except ValueError:
            continue
        if not 1 <= i <= len(actions):
            print("Invalid selection.")
            pause()
            continue
        label, fn = actions[i - 1]
        ok, out = attempt(fn)
        if ok:
            show(out, f"{label}: done.")
        pause()


# ---------------------------
# PostgreSQL / PHP
# ---------------------------

def _postgres_loop(store: ConfigStore):
    db_name = str(store.get("NCDB", "nextcloud_db"))
    while True:
        clear()
        print("=== PostgreSQL ===")
        print("1) Back up all databases")
        print("2) Restore all databases")
        print("3) Database status")
        print("4) Users in database vs. latest dump")
        print("5) Back")
        sub = ask("Choose", "3")

        if sub == "1":
            ok, path = attempt(database.backup_all)
            if ok:
                print(f"Database backup written to {path}")
            pause()
        elif sub == "2":
            if confirm("Restore every database from the dump? Current data is replaced", "no"):
                if attempt(database.restore_all)[0]:
                    print("Database restore completed.")
            pause()
        elif sub == "3":
            show(database.status())
            pause()
        elif sub == "4":
            dump = database.DEFAULT_DUMP
            print(f"Backup file      : {dump if dump.exists() else 'none'}")
            print(f"Users in {db_name}: {database.user_count(db_name)}")
            print(f"Users in backup  : {user_count_from_dump(dump) if dump.exists() else 'N/A'}")
            pause()
        elif sub == "5":
            break

def _php_loop(store: ConfigStore, nc: Nextcloud):
    # pylint: disable=too-many-branches
    while True:
        clear()
        print("=== PHP ===")
        print(f"[PHP: {store.get('PHPVER', '') or 'unknown'}]")
        print("1) Identify version")
        print("2) Restart PHP-FPM")
        print("3) Show PHP-FPM log")
        print("4) Repair Nextcloud PHP (reinstall Apache)")
        print("5) Remove PHP")
        print("6) Back")
        sub = ask("Choose", "1")

        if sub == "1":
            ok, ver = attempt(php.identify, store)
            if ok:
                print(f"PHP {ver} detected and saved as PHPVER.")
            pause()
        elif sub == "2":
            ok, unit = attempt(php.restart_fpm, store)
            if ok:
                print(f"{unit} restarted.")
            pause()
        elif sub == "3":
            ok, out = attempt(php.tail_log, store)
            if ok:
                show(out)
            pause()
        elif sub == "4":
            if confirm("Purge and reinstall Apache? Nextcloud is offline meanwhile", "no"):
                ok, unit = attempt(php.repair, store, nc)
                if ok:
                    print(f"Apache reinstalled and attached to {unit}.")
            pause()
        elif sub == "5":
            if confirm("Remove every PHP package? Nextcloud stops working until PHP is reinstalled", "no"):
                if attempt(php.remove, store, nc)[0]:
                    print("PHP removed. Nextcloud is left in maintenance mode.")
            pause()
        elif sub == "6":
            break


# ---------------------------
# DNS / FQDN / LDAP
# ---------------------------

def _network_loop(store: ConfigStore):
    # pylint: disable=too-many-branches
    while True:
        clear()
        print("=== DNS / FQDN ===")
        print("1) Identify FQDN")
        print("2) Update FQDN")
        print("3) Identify DNS servers")
        print("4) Update DNS servers")
        print("5) Open web ports (80/443)")
        print("6) Back")
        sub = ask("Choose", "1")

        if sub == "1":
            print(f"FQDN: {network.current_fqdn() or 'unknown'}")
            pause()
        elif sub == "2":
            new = ask("New FQDN (e.g. cloud.example.com)")
            if new and confirm(f"Set hostname to {new}?", "no"):
                if attempt(network.update_fqdn, new)[0]:
                    store.set("FQDN", new)
                    print("FQDN updated. A reboot applies it everywhere.")
            pause()
        elif sub == "3":
            print(f"DNS servers: {', '.join(network.current_dns()) or 'unknown'}")
            pause()
        elif sub == "4":
            raw = ask("DNS servers, comma separated", f"{settings.DNS1},{settings.DNS2}")
            netplan = str(store.get("INTERFACES", settings.INTERFACES))
            ok, servers = attempt(network.update_dns, raw.split(","), netplan)
            if ok:
                store.set("DNS1", servers[0])
                store.set("DNS2", servers[1] if len(servers) > 1 else "")
                print(f"DNS updated: {', '.join(servers)}")
            pause()
        elif sub == "5":
            ok, result = attempt(network.open_web_ports)
            if ok:
                for port, state in result.items():
                    print(f"{port}: {state}")
            pause()
        elif sub == "6":
            break

def _ldap_loop(nc: Nextcloud):
    while True:
        clear()
        print("=== LDAP ===")
        print("1) Enable LDAP app")
        print("2) Show LDAP configurations")
        print("3) Test an LDAP configuration")
        print("4) Back")
        sub = ask("Choose", "2")

        if sub == "1":
            if attempt(ldap.enable, nc)[0]:
                print("LDAP app enabled.")
            pause()
        elif sub == "2":
            ok, out = attempt(ldap.show_config, nc)
            if ok:
                show(out, "No LDAP configurations.")
            pause()
        elif sub == "3":
            ok, out = attempt(ldap.show_config, nc)
            config_id = pick(ldap.config_ids(out), "Select a configuration:") if ok else None
            if config_id:
                ok, result = attempt(ldap.test_config, nc, config_id)
                if ok:
                    show(result)
            pause()
        elif sub == "4":
            break


# ---------------------------
# Docker / Redis
# ---------------------------

def _docker_loop():
    # pylint: disable=too-many-branches
    while True:
        clear()
        print("=== Docker ===")
        print("1) List containers")
        print("2) List images")
        print("3) Start container")
        print("4) Stop container")
        print("5) Remove container")
        print("6) Remove image")
        print("7) View networks")
        print("8) Back")
        sub = ask("Choose", "1")

        if sub in ("1", "2", "7"):
            fn = {"1": docker_ops.list_containers, "2": docker_ops.list_images, "7": docker_ops.list_networks}[sub]
            ok, out = attempt(fn)
            if ok:
                show(out)
            pause()
        elif sub in ("3", "4", "5"):
            running_only = sub == "4"
            ok, names = attempt(docker_ops.container_names, running_only)
            name = pick(names, "Select a container:") if ok else None
            if name:
                fn = {"3": docker_ops.start_container, "4": docker_ops.stop_container,
                      "5": docker_ops.remove_container}[sub]
                if attempt(fn, name)[0]:
                    print(f"Done: {name}")
            pause()
        elif sub == "6":
            ok, images = attempt(docker_ops.image_names)
            image = pick(images, "Select an image:") if ok else None
            if image:
                try:
                    docker_ops.remove_image(image)
                    print(f"Image {image} removed.")
                except CommandError as exc:
                    print(f"Failed: {exc}")
                    if confirm("Force removal?", "no") and attempt(docker_ops.remove_image, image, True)[0]:
                        print(f"Image {image} force-removed.")
            pause()
        elif sub == "8":
            break

def _redis_loop(store: ConfigStore, nc: Nextcloud):
    redis = RedisManager(store, nc)
    while True:
        clear()
        print("=== Redis ===")
        print(f"[redis-server: {redis.status()}]")
        print("1) Install Redis")
        print("2) Remove Redis")
        print("3) Configure Redis for Nextcloud")
        print("4) Remove Redis from Nextcloud config")
        print("5) Restart Redis")
        print("6) Check Redis status")
        print("7) Back")
        sub = ask("Choose", "6")

        if sub == "1":
            attempt(redis.install)
            pause()
        elif sub == "2":
            if confirm("Purge redis-server and its Nextcloud config?", "no") and attempt(redis.remove)[0]:
                print("Redis removed.")
            pause()
        elif sub == "3":
            if attempt(redis.configure_for_nextcloud)[0]:
                print("Redis configured. REDIS_PASS has been updated in the variables.")
            pause()
        elif sub == "4":
            removed = redis.delete_nextcloud_config()
            print(f"Removed: {', '.join(removed) or 'nothing'}")
            pause()
        elif sub == "5":
            if attempt(redis.restart)[0]:
                print("Redis restarted.")
            pause()
        elif sub == "6":
            print(f"Service: {redis.status()}")
            print(f"PING   : {redis.ping()}")
            pause()
        elif sub == "7":
            break


# ---------------------------
# Backup / TLS / SMTP
# ---------------------------

def _backup_loop(store: ConfigStore):
    manager = BackupManager(store)
    targets = list(manager.targets)
    while True:
        clear()
        print("=== Backup ===")
        print(f"[Backup dir: {manager.backup_dir}]")
        print("1) Create backup")
        print("2) Restore latest backup")
        print("3) List backups")
        print("4) Back")
        sub = ask("Choose", "3")

        if sub == "1":
            target = pick(targets, "What to back up:")
            if target:
                ok, path = attempt(manager.backup, target)
                if ok:
                    print(f"Backup written to {path}")
            pause()
        elif sub == "2":
            target = pick(targets, "What to restore:")
            if target:
                ok, latest = attempt(manager.latest, target)
                if ok and confirm(f"Restore {target} from {latest.name}?", "no"):
                    if attempt(manager.restore, target, latest)[0]:
                        print(f"{target} restored.")
            pause()
        elif sub == "3":
            backups = manager.list_backups()
            if not backups:
                print("No backups found.")
            for path in backups:
                print(f"- {path.name:45s} {format_backup_timestamp(manager.stamp_of(path))}")
            pause()
        elif sub == "4":
            break

def _generate_certificate(store: ConfigStore):
    domain = ask("Domain for the certificate", str(store.get("TLSDOMAIN", "") or ""))
    email = ask("Email for Let's Encrypt notices")
    if not domain or not email:
        print("Domain and email are required.")
        return
    if not attempt(tls.install_certbot)[0]:
        return
    print("Running a dry run first...")
    if not attempt(tls.generate_certificate, domain, email, True)[0]:
        return
    if confirm("Dry run succeeded. Request the real certificate?", "yes"):
        if attempt(tls.generate_certificate, domain, email)[0]:
            store.set("TLSDOMAIN", domain)
            print(f"Certificate issued for {domain}.")

def _tls_loop(store: ConfigStore):
    # pylint: disable=too-many-branches
    while True:
        clear()
        print("=== TLS ===")
        print("1) Install and generate TLS certificate")
        print("2) Check domain reachability")
        print("3) Check open ports")
        print("4) Activate TLS site configuration")
        print("5) Restart web server")
        print("6) Show certificate details")
        print("7) Generate DH parameters")
        print("8) Back")
        sub = ask("Choose", "6")
        domain_default = str(store.get("TLSDOMAIN", "") or "")

        if sub == "1":
            _generate_certificate(store)
            pause()
        elif sub == "2":
            domain = ask("Domain", domain_default)
            ok, reachable = attempt(tls.is_reachable, domain)
            if ok:
                print(f"{domain} is {'reachable' if reachable else 'NOT reachable'} over HTTP.")
            pause()
        elif sub == "3":
            domain = ask("Domain", domain_default)
            ok, ports = attempt(tls.check_ports, domain)
            if ok:
                for port, is_open in ports.items():
                    print(f"Port {port}: {'open' if is_open else 'closed'}")
            pause()
        elif sub == "4":
            domain = ask("Domain", domain_default)
            old = ask("Old site config to disable (blank to keep)", "")
            if attempt(tls.activate_site, domain, old)[0]:
                print(f"{domain}.conf activated.")
            pause()
        elif sub == "5":
            if attempt(tls.restart_web_server)[0]:
                print("apache2 restarted.")
            pause()
        elif sub == "6":
            domain = ask("Domain", domain_default)
            ok, info = attempt(tls.certificate_info, domain)
            if ok:
                print(info.summary())
            pause()
        elif sub == "7":
            print("Generating 2048-bit DH parameters; this can take a while...")
            ok, written = attempt(tls.write_dhparams)
            if ok:
                print(f"Written to {tls.DHPARAMS_PATH}" if written else f"{tls.DHPARAMS_PATH} already exists.")
            pause()
        elif sub == "8":
            break

def _ask_smtp_settings() -> Optional[SMTPSettings]:
    provider = pick(list(PRESETS) + ["Manual setup"], "Choose the mail provider:")
    if not provider:
        return None
    if provider == "Manual setup":
        server = ask("SMTP relay server (e.g. smtp.mail.com)")
        protocol = pick(list(DEFAULT_PORTS), "Encryption protocol:") or "SSL"
        port = ask("SMTP port", DEFAULT_PORTS[protocol])
        username = ask("SMTP username (blank for none)", "")
        password = ask("SMTP password", "") if username else ""
        recipient = ask("Recipient for notifications")
        return SMTPSettings(server, port, protocol, username, password, recipient)
    username = ask("SMTP username (e.g. you@mail.com)")
    password = ask("SMTP password")
    recipient = ask("Recipient for notifications")
    return SMTPSettings.from_preset(provider, username, password, recipient)

def _smtp_loop(store: ConfigStore, variables_path: Path):
    relay = SMTPRelay(variables_path)
    while True:
        clear()
        print("=== SMTP relay ===")
        print(f"[Relay: {relay.store.get('smtp_server', '') or 'not configured'}]")
        print("1) Install and configure relay")
        print("2) Send test email")
        print("3) Remove relay")
        print("4) Back")
        sub = ask("Choose", "1")

        if sub == "1":
            smtp = _ask_smtp_settings()
            if smtp and attempt(relay.install)[0] and attempt(relay.configure, smtp)[0]:
                store.update(relay.smtp_values())
                print("SMTP configuration complete.")
            pause()
        elif sub == "2":
            recipient = ask("Recipient", str(relay.store.get("smtp_recipient", "") or ""))
            if recipient and attempt(relay.send_test, recipient)[0]:
                print("Test email sent. Check your inbox.")
            pause()
        elif sub == "3":
            if confirm("Remove msmtp and its configuration?", "no") and attempt(relay.remove)[0]:
                for key in [k for k in store if k.startswith("smtp_")]:
                    store.delete(key)
                print("SMTP configuration removed.")
            pause()
        elif sub == "4":
            break


# ---------------------------
# System info / exit
# ---------------------------

def _sysinfo(store: ConfigStore):
    clear()
    print("=== System info ===")
    for key in ("DISTRO", "CODENAME", "SYSVENDOR", "KEYBOARD_LAYOUT", "IFACE", "IFACE2", "GATEWAY",
                "ADDRESS", "WANIP4", "REPO", "PSQLVER", "PHPVER", "NCPATH", "NCDATA", "BACKUP"):
        print(f"{key:16s} {store.get(key, '') or '-'}")
    if confirm("\nRe-detect system facts now?", "no"):
        if attempt(refresh_facts, store)[0]:
            print("System facts refreshed.")

def _exit(store: ConfigStore) -> bool:
    busy = terminate.running_critical()
    if busy:
        print(f"Critical processes are running: {', '.join(busy)}")
        if not confirm("Exit Cloudman anyway?", "no"):
            print("Exit cancelled.")
            pause()
            return False
    try:
        path = store.save()
        print(f"Variables saved to {path}")
    except ConfigWriteError as exc:
        print(f"Failed: {exc}")
    print("Goodbye!")
    return True


# ---------------------------
# Main Menu
# ---------------------------

MAIN_CHOICES: List[str] = [
    "Update Nextcloud",
    "Repair Nextcloud",
    "Manage Nextcloud apps",
    "Nextcloud settings",
    "Manage PostgreSQL",
    "Manage PHP",
    "Manage DNS/FQDN",
    "Manage LDAP",
    "Manage Docker",
    "Manage Redis",
    "Backup",
    "TLS certificates",
    "SMTP relay",
    "System info",
    "Exit",
]

def menu(variables_path: Path, interval_ms: int, advance_on_failure: bool = True) -> int:
    # pylint: disable=too-many-branches
    store = load_or_empty(variables_path)
    if "DISTRO" not in store:
        attempt(refresh_facts, store)
    nc = Nextcloud(str(store.get("NCPATH", settings.NCPATH)))
    app_updates = Refresher(store, "APP_UPDATES", nc.app_update_status, interval_ms,
                            advance_timestamp_on_failure=advance_on_failure)

    while True:
        welcome(store, app_updates)
        for i, label in enumerate(MAIN_CHOICES, 1):
            print(f"{i:2d}) {label}")
        choice = ask("What would you like to do?", "1")

        if choice == "1":
            _update_loop(store, nc)
        elif choice == "2":
            _repair_loop(store, nc)
        elif choice == "3":
            _apps_loop(nc, app_updates)
        elif choice == "4":
            _settings_loop(nc)
        elif choice == "5":
            _postgres_loop(store)
        elif choice == "6":
            _php_loop(store, nc)
        elif choice == "7":
            _network_loop(store)
        elif choice == "8":
            _ldap_loop(nc)
        elif choice == "9":
            _docker_loop()
        elif choice == "10":
            _redis_loop(store, nc)
        elif choice == "11":
            _backup_loop(store)
        elif choice == "12":
            _tls_loop(store)
        elif choice == "13":
            _smtp_loop(store, variables_path)
        elif choice == "14":
            _sysinfo(store)
            pause()
        elif choice == "15":
            if _exit(store):
                return 0

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cloudman", description="Nextcloud instance manager")
    parser.add_argument("--variables", type=Path, default=settings.VARIABLES_PATH,
                        help="JSON file holding the console's variables (default: %(default)s)")
    parser.add_argument("--refresh-interval", type=int, default=settings.APP_UPDATE_INTERVAL_MS // 1000,
                        help="seconds before the app update summary is checked again (default: %(default)s)")
    parser.add_argument("--no-advance-on-failure", action="store_true",
                        help="retry a failed app update check on the next screen instead of waiting")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser

def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings.setup_logging()
    log.info("cloudman %s starting, variables=%s", __version__, args.variables)
    try:
        return menu(args.variables, args.refresh_interval * 1000, not args.no_advance_on_failure)
    except KeyboardInterrupt:
        print("\nExiting...")
        return 0

if __name__ == "__main__":
    sys.exit(main())
