#! /usr/bin/env python3
#
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import logging
import sys

import click

from m32fw import devices, image, m32fw_version
from m32fw.dumpinfo import dump_imginfo
from m32fw.errors import FirmwareUtilError

MIN_PYTHON_VERSION = (3, 8)
if sys.version_info < MIN_PYTHON_VERSION:
    sys.exit("Python %s.%s or newer is required by m32fw."
             % MIN_PYTHON_VERSION)

logger = logging.getLogger(__name__)


class ArgumentError(click.UsageError):
    """Bad command line arguments; prints the usage text."""
    exit_code = 1


class FirmwareUtilCommand(click.Command):
    """Command whose argument errors exit with status 1.

    The operation flags share one destination, so click alone would keep
    the last of several; more than one is rejected before parsing.
    """

    def parse_args(self, ctx, args):
        options = args[:args.index('--')] if '--' in args else args
        given = [a for a in options if image.find_operation(a) is not None]
        if len(given) > 1:
            raise ArgumentError("Only one operation may be given, got: {}"
                                .format(", ".join(given)), ctx=ctx)
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as e:
            e.exit_code = ArgumentError.exit_code
            raise


def configure_logging(verbose=False, quiet=False):
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    logging.basicConfig(format='%(levelname)5s: %(message)s', level=level,
                        stream=sys.stdout, force=True)


def usage_epilog():
    lines = ["\b", "<Device> can be one of the following:"]
    for d in devices.DEVICES:
        lines.append("  {}: {}".format(d.name, d.description))
    lines += ["", "\b", "<Operation> can be one of the following:"]
    for op in image.OPERATIONS:
        lines.append("  {}: {}".format(op.argument, op.description))
    return "\n".join(lines)


def operation_options(f):
    for op in image.OPERATIONS:
        f = click.option(op.argument, 'operation', flag_value=op.argument,
                         help=op.description)(f)
    return f


def validate_device(ctx, param, value):
    device = devices.find_device(value)
    if device is None:
        raise click.BadParameter(
            "Unknown device {}, use one of: {}".format(
                value, ", ".join(devices.device_names())))
    return device


@click.argument('outfile')
@click.argument('infile')
@click.argument('device', callback=validate_device)
@operation_options
@click.option('--debug', 'debug_dir', metavar='<Directory>',
              type=click.Path(file_okay=False),
              help='Write intermediate buffers to <Directory>')
@click.option('-v', '--verbose', default=False, is_flag=True,
              help='Print debug messages')
@click.option('-q', '--quiet', default=False, is_flag=True,
              help='Only print warnings and errors')
@click.version_option(m32fw_version, '--version')
@click.command(cls=FirmwareUtilCommand,
               context_settings=dict(help_option_names=['-h', '--help']),
               epilog=usage_epilog(),
               help='''Convert firmware images of D-Link mesh routers\n
               DEVICE selects the key material, exactly one operation
               selects the conversion from INFILE to OUTFILE. INFILE and
               OUTFILE are parsed as Intel HEX if they have a .hex
               extension, otherwise binary format is used''')
def m32_firmware_util(device, operation, infile, outfile, debug_dir, verbose,
                      quiet):
    configure_logging(verbose, quiet)
    op = image.find_operation(operation) if operation else None
    if op is None:
        raise ArgumentError("Missing operation, use one of: {}".format(
            ", ".join(op.argument for op in image.OPERATIONS)),
            ctx=click.get_current_context())
    debug = image.DebugConfig(debug_dir) if debug_dir is not None else None

    pipeline = image.ImagePipeline(device, debug)
    try:
        data = image.load_image(infile, op.min_size)
        result = op.run(pipeline, data)
        image.save_image(outfile, result)
    except FirmwareUtilError as e:
        raise click.ClickException("{} failed ({} error): {}".format(
            op.argument.lstrip('-'), e.kind, e))
    logger.info("%s completed successfully", op.argument.lstrip('-'))


def validate_info_device(ctx, param, value):
    return validate_device(ctx, param, value) if value is not None else None


@click.argument('imgfile')
@click.option('-d', '--device', metavar='device',
              callback=validate_info_device,
              help='Device whose keys and partition magic are used: {}'
                   .format(', '.join(devices.device_names())))
@click.option('-o', '--outfile', metavar='filename', required=False,
              help='Save image information to outfile in YAML format')
@click.option('-s', '--silent', default=False, is_flag=True,
              help='Do not print image information to output')
@click.command(context_settings=dict(help_option_names=['-h', '--help']),
               help='Print the headers of a factory image or the partition '
                    'headers of a recovery image')
def dumpinfo(imgfile, device, outfile, silent):
    configure_logging(quiet=True)
    dump_imginfo(imgfile, device, outfile, silent)
    if not silent:
        print("dumpinfo has run successfully")


if __name__ == '__main__':
    m32_firmware_util()
