# main.py
#
# Runs the tone modem from a source checkout: python main.py --protocol dtmf_text

from tonelink.cli import main

if __name__ == '__main__':
    raise SystemExit(main())
