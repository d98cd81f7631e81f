import sys

from lvm_provisioner.main import main


if __name__ == "__main__":
    sys.exit(main())
