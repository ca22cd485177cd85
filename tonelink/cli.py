# cli.py
#
# Interactive terminal front end: send text as tones, listen for messages,
# and move messages in and out of WAV files.
#
# Dependencies:
# pip install sounddevice numpy

import argparse
import logging
import threading

from .config import DEFAULT_VOLUME
from .errors import CaptureDeviceError, ToneLinkError
from .listener import Listener, decode_wav
from .protocols import PROTOCOLS, CustomToneConfig, build_custom_protocol, get_protocol
from .receiver import Receiver
from .transmitter import render_wav, transmit

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Send and receive text over sound.")
    parser.add_argument('--protocol', default='standard', choices=sorted(PROTOCOLS),
                        help="Tone protocol to send and listen with")
    parser.add_argument('--volume', type=float, default=DEFAULT_VOLUME,
                        help="Output volume between 0 and 1")
    parser.add_argument('--pause', type=int, default=None,
                        help="Override the pause between tones in milliseconds")
    parser.add_argument('--custom-base', type=float, default=None,
                        help="Base frequency in Hz for the custom protocol")
    parser.add_argument('--custom-step', type=float, default=None,
                        help="Frequency step in Hz for the custom protocol")
    parser.add_argument('--log-level', default='WARNING',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    return parser.parse_args(argv)


def resolve_protocol(args):
    """Looks up the selected protocol, building the custom one from the flags if needed."""
    if args.protocol != 'custom' or (args.custom_base is None and args.custom_step is None):
        return get_protocol(args.protocol)
    defaults = CustomToneConfig()
    return build_custom_protocol(CustomToneConfig(
        base_frequency=defaults.base_frequency if args.custom_base is None else args.custom_base,
        step=defaults.step if args.custom_step is None else args.custom_step,
    ))


def print_progress(index, total, token, frequency):
    if index is None:
        print(f"\rSent {total} tones.{' ' * 20}")
    else:
        print(f"\rTone {index + 1}/{total}: '{token}' {frequency or 0:.0f} Hz  ", end='', flush=True)


def start_sending(protocol, volume, pause_ms):
    text = input("Enter text to send: ")
    if not text:
        print("Input is empty.")
        return

    cancel = threading.Event()
    result = {}

    def send():
        result['ok'] = transmit(text, volume, protocol, print_progress, pause_ms=pause_ms, cancel=cancel)

    sending_thread = threading.Thread(target=send)
    print(f"\nSending with '{protocol.name}'... Press Enter to cancel.")
    sending_thread.start()
    try:
        input()
    except KeyboardInterrupt:
        print("\nStopping sender.")
    cancel.set()
    sending_thread.join()
    if not result.get('ok'):
        print("Transmission did not complete.")


def show_message(message):
    marker = 'OK ' if message.ok else 'ERR'
    print(f"\n[{message.timestamp:%H:%M:%S}] {marker} {message.text}")


def start_receiving(protocol):
    receiver = Receiver([protocol], on_message=show_message)
    try:
        with Listener(receiver):
            print(f"\nListening with '{protocol.name}'... Press Enter to stop.")
            input()
    except CaptureDeviceError as e:
        print(f"Cannot listen: {e}")
        return
    except KeyboardInterrupt:
        pass
    print(f"Receiver stopped. {len(receiver.messages)} message(s) received.")


def save_wav(protocol, volume, pause_ms):
    text = input("Enter text to save: ")
    data = render_wav(text, volume, protocol, pause_ms=pause_ms)
    if data is None:
        print("Nothing to save: no supported characters.")
        return
    path = input("Output file [message.wav]: ").strip() or 'message.wav'
    with open(path, 'wb') as f:
        f.write(data)
    print(f"Saved {len(data)} bytes to {path}")


def decode_file(protocol):
    path = input("WAV file to decode: ").strip()
    if not path:
        return
    try:
        messages = decode_wav(path, [protocol])
    except (OSError, ValueError) as e:
        print(f"Could not read {path}: {e}")
        return
    if not messages:
        print("No messages found.")
    for message in messages:
        show_message(message)


def list_protocols(current):
    for protocol in PROTOCOLS.values():
        marker = '*' if protocol.id == current.id else ' '
        print(f" {marker} {protocol.id:<10} {protocol.tone_ms:>4}/{protocol.pause_ms:<4} ms  {protocol.description}")


# --- Main Application Logic ---
def main(argv=None):
    """Main function to run the CLI."""
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(asctime)s [%(levelname)s] %(message)s")

    try:
        protocol = resolve_protocol(args)
    except (ToneLinkError, ValueError) as e:
        print(f"Error: {e}")
        return 2

    print("--- Tone Link ---")
    while True:
        choice = input(
            "\nChoose an option:\n1. Send text\n2. Receive\n3. Save text as WAV\n"
            "4. Decode WAV file\n5. List protocols\n6. Exit\n> "
        ).strip()
        if choice == '1':
            start_sending(protocol, args.volume, args.pause)
        elif choice == '2':
            start_receiving(protocol)
        elif choice == '3':
            save_wav(protocol, args.volume, args.pause)
        elif choice == '4':
            decode_file(protocol)
        elif choice == '5':
            list_protocols(protocol)
        elif choice == '6':
            break
        else:
            print("Invalid choice. Please enter a number from 1 to 6.")
    print("Goodbye!")
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
