#!/usr/bin/env python3

# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

import os
import sys
import argparse
import json
import time
import asyncio
import logging
from signal import SIGINT, SIGTERM

from yeelight_lan_protocol.internal_types import *

from yeelight_lan_protocol import (
    __version__ as pkg_version,
    YeelightClient,
    YeelightConfig,
    YeelightDevice,
    YeelightEvent,
    YeelightEventKind,
    YEELIGHT_DISCOVERY_PORT,
    DEFAULT_TRANSITION_MS,
  )

DEFAULT_WAIT_TIME = 3.0
"""The default time (in seconds) to wait for discovery responses."""

class CmdExitError(RuntimeError):
    exit_code: int

    def __init__(self, exit_code: int, msg: Optional[str]=None):
        if msg is None:
            msg = f"Command exited with return code {exit_code}"
        super().__init__(msg)
        self.exit_code = exit_code

class ArgparseExitError(CmdExitError):
    pass

class NoExitArgumentParser(argparse.ArgumentParser):
    def exit(self, status=0, message=None):
        if message:
            self._print_message(message, sys.stderr)
        raise ArgparseExitError(status, message)

def event_summary(event: YeelightEvent) -> JsonableDict:
    summary: JsonableDict = { "event": event.kind.value }
    if event.port is not None:
        summary["port"] = event.port
    if event.device is not None:
        summary["device"] = event.device.to_jsonable()
    return summary

class CommandHandler:
    _argv: Optional[Sequence[str]]
    _parser: argparse.ArgumentParser
    _args: argparse.Namespace
    _provide_traceback: bool = True

    def __init__(self, argv: Optional[Sequence[str]]=None):
        self._argv = argv

    def _create_client(self) -> YeelightClient:
        bind_address: str = self._args.bind_address
        return YeelightClient(YeelightConfig(port=self._args.port, bind_address=bind_address))

    async def _find_device(self, client: YeelightClient) -> YeelightDevice:
        """Discovers devices until one matches --id or --host, or --wait-time elapses."""
        device_id: Optional[str] = self._args.device_id
        host: Optional[str] = self._args.host
        if device_id is None and host is None:
            raise CmdExitError(1, "No device specified. Use --id or --host, or set env var YEELIGHT_HOST")

        def find() -> Optional[YeelightDevice]:
            if device_id is None:
                assert host is not None
                return client.find_by_host(host)
            device = client.get(device_id)
            if device is not None and host is not None and device.host != host:
                return None
            return device

        end_time = time.monotonic() + self._args.wait_time
        async with client.subscribe() as subscriber:
            client.discover()
            while True:
                device = find()
                if device is not None:
                    return device
                remaining_time = end_time - time.monotonic()
                if remaining_time <= 0.0:
                    break
                try:
                    event = await asyncio.wait_for(subscriber.receive(), remaining_time)
                except asyncio.TimeoutError:
                    break
                if event is None:
                    break
        raise CmdExitError(1, f"No matching device found within {self._args.wait_time} seconds")

    async def _run_device_command(self, send: Callable[[YeelightClient, YeelightDevice], Awaitable[bool]]) -> int:
        async with self._create_client() as client:
            device = await self._find_device(client)
            await client.connect(device)
            if not device.is_connected:
                raise CmdExitError(1, f"Unable to connect to {device}")
            try:
                if not await send(client, device):
                    raise CmdExitError(1, f"Command was not delivered to {device}")
            finally:
                await client.disconnect(device)
        return 0

    async def cmd_bare(self) -> int:
        print("A command is required", file=sys.stderr)
        return 1

    async def cmd_discover(self) -> int:
        wait_time: float = self._args.wait_time
        async with self._create_client() as client:
            async with client.subscribe() as subscriber:
                client.discover()
                end_time = time.monotonic() + wait_time
                while True:
                    remaining_time = end_time - time.monotonic()
                    if remaining_time <= 0.0:
                        break
                    try:
                        event = await asyncio.wait_for(subscriber.receive(), remaining_time)
                    except asyncio.TimeoutError:
                        break
                    if event is None:
                        break
                    if event.kind == YeelightEventKind.DEVICE_ADDED:
                        assert event.device is not None
                        print(json.dumps(event.device.to_jsonable(), indent=2, sort_keys=True))
                        sys.stdout.flush()
        return 0

    async def cmd_monitor(self) -> int:
        client = self._create_client()
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for signal in (SIGINT, SIGTERM):
            loop.add_signal_handler(signal, stop_event.set)

        async def print_events() -> None:
            async with client.subscribe() as subscriber:
                client.discover()
                async for event in subscriber:
                    print(json.dumps(event_summary(event), sort_keys=True))
                    sys.stdout.flush()

        try:
            async with client:
                printer = asyncio.create_task(print_events())
                await stop_event.wait()
                logging.debug("cmd_monitor: Detected SIGINT/SIGTERM, stopping")
                printer.cancel()
                try:
                    await printer
                except asyncio.CancelledError:
                    pass
        finally:
            for signal in (SIGINT, SIGTERM):
                loop.remove_signal_handler(signal)
        return 0

    async def cmd_power(self) -> int:
        on: bool = self._args.state == 'on'
        duration_ms: int = self._args.duration
        return await self._run_device_command(lambda client, device: client.set_power(device, on, duration_ms))

    async def cmd_brightness(self) -> int:
        percent: int = self._args.percent
        duration_ms: int = self._args.duration
        return await self._run_device_command(lambda client, device: client.set_brightness(device, percent, duration_ms))

    async def cmd_color(self) -> int:
        rgb: List[int] = [self._args.red, self._args.green, self._args.blue]
        duration_ms: int = self._args.duration
        return await self._run_device_command(lambda client, device: client.set_color(device, rgb, duration_ms))

    async def cmd_version(self) -> int:
        print(pkg_version)
        return 0

    async def arun(self) -> int:
        """Run the yeelight-lan command-line tool with provided arguments

        Args:
            argv (Optional[Sequence[str]], optional):
                A list of commandline arguments (NOT including the program as argv[0]!),
                or None to use sys.argv[1:]. Defaults to None.

        Returns:
            int: The exit code that would be returned if this were run as a standalone command.
        """
        parser = NoExitArgumentParser(description="Discover and control Yeelight devices on the local network.")

        # ======================= Main command

        self._parser = parser
        parser.add_argument('--traceback', "--tb", action='store_true', default=False,
                            help='Display detailed exception information')
        parser.add_argument('--log-level', dest='log_level', default='warning',
                            choices=['debug', 'info', 'warning', 'error', 'critical'],
                            help='''The logging level to use. Default: warning''')
        parser.add_argument('--port', type=int, default=YEELIGHT_DISCOVERY_PORT,
                            help=f'''The UDP discovery port to bind and search on. Default: {YEELIGHT_DISCOVERY_PORT}''')
        parser.add_argument('-b', '--bind', dest='bind_address', default='',
                            help='''The local IP address to bind the discovery socket to. Default: all interfaces''')
        parser.add_argument('--wait-time', dest='wait_time', type=float, default=DEFAULT_WAIT_TIME,
                            help=f'''The amount of time to wait for discovery responses, in seconds. Default: {DEFAULT_WAIT_TIME}''')
        parser.set_defaults(func=self.cmd_bare)

        subparsers = parser.add_subparsers(
                            title='Commands',
                            description='Valid commands',
                            help='Additional help available with "<command-name> -h"')

        # ======================= discover

        parser_discover = subparsers.add_parser('discover', description="Search for devices and print each one found")
        parser_discover.set_defaults(func=self.cmd_discover)

        # ======================= monitor

        parser_monitor = subparsers.add_parser('monitor', description="Search for devices, then print events until interrupted")
        parser_monitor.set_defaults(func=self.cmd_monitor)

        # ======================= device commands

        def add_device_args(p: argparse.ArgumentParser) -> None:
            p.add_argument('--id', dest='device_id', default=None,
                           help='''The id of the device to control.''')
            p.add_argument('-H', '--host', default=os.getenv('YEELIGHT_HOST') or None,
                           help='''The IP address of the device to control. Default: env var YEELIGHT_HOST''')
            p.add_argument('-d', '--duration', type=int, default=DEFAULT_TRANSITION_MS,
                           help=f'''The transition duration in milliseconds. Default: {DEFAULT_TRANSITION_MS}''')

        parser_power = subparsers.add_parser('power', description="Turn a device on or off")
        parser_power.add_argument('state', choices=['on', 'off'])
        add_device_args(parser_power)
        parser_power.set_defaults(func=self.cmd_power)

        parser_brightness = subparsers.add_parser('brightness', description="Set the brightness of a device")
        parser_brightness.add_argument('percent', type=int, help='Brightness percentage, 0..100')
        add_device_args(parser_brightness)
        parser_brightness.set_defaults(func=self.cmd_brightness)

        parser_color = subparsers.add_parser('color', description="Set the RGB color of a device")
        parser_color.add_argument('red', type=int)
        parser_color.add_argument('green', type=int)
        parser_color.add_argument('blue', type=int)
        add_device_args(parser_color)
        parser_color.set_defaults(func=self.cmd_color)

        # ======================= version

        parser_version = subparsers.add_parser('version',
                                description='''Display version information.''')
        parser_version.set_defaults(func=self.cmd_version)

        # =========================================================

        try:
            args = parser.parse_args(self._argv)
        except ArgparseExitError as ex:
            return ex.exit_code
        traceback: bool = args.traceback
        self._provide_traceback = traceback

        try:
            logging.basicConfig(
                level=logging.getLevelName(args.log_level.upper()),
            )
            self._args = args
            func: Callable[[], Awaitable[int]] = args.func
            logging.debug(f"Running command {func.__name__}, tb = {traceback}")
            rc = await func()
            logging.debug(f"Command {func.__name__} returned {rc}")
        except Exception as ex:
            if isinstance(ex, CmdExitError):
                rc = ex.exit_code
            else:
                rc = 1
            if rc != 0:
                if traceback:
                    raise
            print(f"yeelight-lan: error: {ex}", file=sys.stderr)
        except BaseException as ex:
            print(f"yeelight-lan: Unhandled exception: {ex}", file=sys.stderr)
            raise

        return rc

    def run(self) -> int:
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            rc = loop.run_until_complete(self.arun())
        finally:
            loop.close()
        return rc

def run(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = CommandHandler(argv).run()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

async def arun(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = await CommandHandler(argv).arun()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

# allow running with "python3 -m", or as a standalone script
if __name__ == "__main__":
    sys.exit(run())
