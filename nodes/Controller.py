"""Module for the Hunter Douglas PowerView Controller node in a Polyglot v3 NodeServer.

This module defines the Controller class, the parent of the shade nodes. It
holds the configuration, talks to the PowerView Gen 2 hub (poll, set position,
calibrate, jog), delivers shade payloads back to the shade nodes and keeps
each shade's snapshot in the Polyglot custom data.

(C) 2025 Stephen Jenkins
"""


# std libraries
import base64, logging, re, socket
from threading import Thread, Event, Lock, Condition, Timer

# external libraries
from udi_interface import Node, LOGGER, Custom, LOG_HANDLER
import requests

# personal libraries
from utils.shade_state import POSKIND_BOTTOM, POSKIND_TOP, percent_to_raw

# Nodes
from nodes.Shade import Shade

# limit the shade label length
SHADE_NAME_LIMIT = 30

# debug logging turns itself off after this many seconds
LOG_AUTO_OFF_SECONDS = 900


"""
HunterDouglas PowerView G2 url's
from api file: [[https://github.com/sejgit/indigo-powerview/blob/master/PowerView%20API.md]]
"""
URL_DEFAULT_GATEWAY = 'powerview-hub.local'
URL_G2_HUB = 'http://{g}/api/userdata/'
URL_G2_SHADE = 'http://{g}/api/shades/{id}'
URL_G2_SHADE_REFRESH = 'http://{g}/api/shades/{id}?refresh=true'

_IPV4_LIKE = re.compile(r'^[0-9.]+$')


def _param_bool(value, default=False):
    """Reads a custom parameter string as a bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('true', '1', 'yes', 'on')


class Controller(Node):
    """Polyglot v3 NodeServer node for a Hunter Douglas PowerView Gen 2 hub.

    This class represents the parent of the shade nodes. It creates a node
    for each configured shade id, forwards shade commands to the hub and
    hands the hub's shade payloads back to the shade nodes.
    """
    id = 'hdctrl'

    def __init__(self, poly, primary, address, name):
        """Initializes the Controller node.

        Args:
            poly: An instance of the Polyglot interface.
            primary: The address of the primary node.
            address: The address of this node.
            name: The name of this node.
        """
        super(Controller, self).__init__(poly, primary, address, name)
        # importand flags, timers, vars
        self.poly = poly
        self.address = address
        self.name = name
        self.hb = 0 # heartbeat
        self.gateway = URL_DEFAULT_GATEWAY
        self.shade_ids = []
        self.open_top_by_default = False
        self.log_enable = True
        self._logs_off_timer = None
        self.numNodes = 0

        # storage arrays & conditions
        self.n_queue = []
        self.queue_condition = Condition()
        self.data_lock = Lock()

        # Events
        self.ready_event = Event()
        self.all_handlers_st_event = Event()

        # Create data storage classes
        self.Notices         = Custom(self.poly, 'notices')
        self.Parameters      = Custom(self.poly, 'customparams')
        self.Data            = Custom(self.poly, 'customdata')

        # startup completion flags
        self.handler_params_st = False
        self.handler_data_st = False

        # Subscribe to various events from the Interface class.
        # The START event is unique in that you can subscribe to
        # the start event for each node you define.

        self.poly.subscribe(self.poly.START,             self.start, address)
        self.poly.subscribe(self.poly.POLL,              self.poll)
        self.poly.subscribe(self.poly.LOGLEVEL,          self.handleLevelChange)
        self.poly.subscribe(self.poly.CUSTOMPARAMS,      self.parameterHandler)
        self.poly.subscribe(self.poly.CUSTOMDATA,        self.dataHandler)
        self.poly.subscribe(self.poly.STOP,              self.stop)
        self.poly.subscribe(self.poly.ADDNODEDONE,       self.node_queue)

        # Tell the interface we have subscribed to all the events we need.
        # Once we call ready(), the interface will start publishing data.
        self.poly.ready()

        # Tell the interface we exist.
        self.poly.addNode(self, conn_status='ST')


    def start(self):
        """Handles the startup sequence for the node.

        This method is called once by Polyglot at startup. It waits for the
        custom parameters and data, creates the configured shade nodes and
        signals the shade nodes that they may start.
        """
        LOGGER.info(f"Started HunterDouglas Shade PG3 NodeServer {self.poly.serverdata['version']}")
        self.Notices.clear()
        self.Notices['hello'] = 'Plugin Start-up'
        self.setDriver('ST', 1, report = True, force = True)

        # Send the profile files to the ISY if neccessary or version changed.
        self.poly.updateProfile()

        # Send the default custom parameters documentation file to Polyglot
        self.poly.setCustomParamsDoc()

        # Initializing heartbeat
        self.heartbeat()

        # Wait for all handlers to finish
        LOGGER.warning(f'Waiting for all handlers to complete...')
        self.all_handlers_st_event.wait(timeout=300)
        if not self.all_handlers_st_event.is_set():
            # start-up failed
            LOGGER.error("Timed out waiting for handlers to startup")
            self.setDriver('ST', 2) # start-up failed
            self.Notices['error'] = 'Error start-up timeout.  Check config / hardware & restart'
            return

        self.create_shade_nodes()

        # signal to the nodes, its ok to start
        self.ready_event.set()

        # clear inital start-up message
        if self.Notices.get('hello'):
            self.Notices.delete('hello')

        LOGGER.info(f'exit {self.name}')


    def node_queue(self, data):
        """Queues a node address to signify its creation is complete.

        This method, used in conjunction with wait_for_node_done(), provides a
        mechanism to synchronize node creation, as the addNode operation is
        asynchronous.

        Args:
            data (dict): The data payload from the ADDNODEDONE event,
                         containing the node's address.
        """
        address = data.get('address')
        if address:
            with self.queue_condition:
                self.n_queue.append(address)
                self.queue_condition.notify()


    def wait_for_node_done(self):
        """Waits for a node to be fully added before proceeding."""
        with self.queue_condition:
            while not self.n_queue:
                self.queue_condition.wait(timeout = 0.2)
            self.n_queue.pop()


    def dataHandler(self,data):
        """Handles the loading of custom data from Polyglot.

        The custom data holds the saved snapshot of every shade.

        Args:
            data (dict): A dictionary containing the custom data.
        """
        LOGGER.debug(f'enter: Loading data {data}')
        if data is None:
            LOGGER.warning("No custom data")
        else:
            self.Data.load(data)
            LOGGER.info(f"Custom data:{self.Data}")
        self.handler_data_st = True
        self.check_handlers()


    def parameterHandler(self, params):
        """Handles updates to custom parameters from the Polyglot dashboard.

        Args:
            params (dict): A dictionary of the custom parameters.
        """
        LOGGER.debug('Loading parameters now')
        if params:
            self.Parameters.load(params)

        defaults = {
            "gatewayip": URL_DEFAULT_GATEWAY,
            "shadeids": "",
            "openTopByDefault": "false",
            "logEnable": "true",
        }
        for param, default_value in defaults.items():
            if param not in self.Parameters:
                self.Parameters[param] = default_value
        if self.checkParams():
            self.handler_params_st = True
        self.check_handlers()


    def check_handlers(self):
        """Checks if all startup handlers have completed and signals an event."""
        if self.handler_params_st and self.handler_data_st:
            self.all_handlers_st_event.set()
            LOGGER.info("All parameters loaded & good")


    def handleLevelChange(self, level):
        """Handles a change in the log level.

        Args:
            level (dict): A dictionary containing the new log level.
        """
        LOGGER.info(f'enter: level={level}')
        if level['level'] < 10:
            LOGGER.info("Setting basic config to DEBUG...")
            LOG_HANDLER.set_basic_config(True,logging.DEBUG)
        else:
            LOGGER.info("Setting basic config to INFO...")
            LOG_HANDLER.set_basic_config(True,logging.INFO)
        LOGGER.info(f'exit: level={level}')


    def checkParams(self):
        """Validates the custom parameters for the controller.

        Checks 'gatewayip' and 'shadeids', and applies 'openTopByDefault'
        and 'logEnable'.

        Returns:
            bool: True if parameters are valid, False otherwise.
        """
        self.Notices.delete('gateway')
        self.Notices.delete('shadeids')
        valid = True

        self.gateway = self.Parameters.gatewayip or URL_DEFAULT_GATEWAY
        if _IPV4_LIKE.match(self.gateway):
            try:
                socket.inet_aton(self.gateway)
            except OSError:  # OSError is the modern base for socket.error
                LOGGER.error("Bad gateway IP address: %s", self.gateway)
                self.Notices['gateway'] = "Bad gateway IP address. Check 'gatewayip' in customParams"
                valid = False
        LOGGER.info(f'gateway:{self.gateway}')

        self.shade_ids = []
        for sid in str(self.Parameters.shadeids or '').split(','):
            sid = sid.strip()
            if not sid:
                continue
            if sid.isdigit():
                self.shade_ids.append(sid)
            else:
                LOGGER.error("Bad shade id: %s", sid)
                self.Notices['shadeids'] = "Shade ids must be numbers separated by commas"
        if not self.shade_ids:
            LOGGER.warning("No shade ids defined in customParams")
            self.Notices['shadeids'] = "Please define 'shadeids' in customParams"

        self.open_top_by_default = _param_bool(self.Parameters.openTopByDefault)
        self.set_log_enable(_param_bool(self.Parameters.logEnable, True))
        return valid


    def set_log_enable(self, enabled):
        """Turns debug logging on (with an automatic turn-off) or off."""
        if self._logs_off_timer is not None:
            self._logs_off_timer.cancel()
            self._logs_off_timer = None

        if enabled and not self.log_enable:
            LOGGER.info("Debug logging enabled.")
        self.log_enable = enabled
        if enabled:
            LOG_HANDLER.set_basic_config(True, logging.DEBUG)
            self._logs_off_timer = Timer(LOG_AUTO_OFF_SECONDS, self.logsOff)
            self._logs_off_timer.daemon = True
            self._logs_off_timer.start()
        else:
            LOG_HANDLER.set_basic_config(True, logging.INFO)


    def logsOff(self):
        """Timer callback turning debug logging back off."""
        LOGGER.warning("Debug logging disabled.")
        self._logs_off_timer = None
        self.log_enable = False
        LOG_HANDLER.set_basic_config(True, logging.INFO)
        self.Parameters['logEnable'] = 'false'


    def poll(self, flag):
        """Handles polling requests from Polyglot.

        - Short polls send the heartbeat.
        - Long polls request a (non-forced) poll of every shade.

        Args:
            flag (str): A string indicating the type of poll ('shortPoll' or 'longPoll').
        """
        LOGGER.debug('enter')
        # no updates until node is through start-up
        if not self.ready_event.is_set():
            LOGGER.error(f"Node not ready yet, exiting")
            return

        if 'shortPoll' in flag:
            LOGGER.debug(f"shortPoll controller")
            self.heartbeat()

        if 'longPoll' in flag:
            self.pollAll()

        LOGGER.debug(f'exit')


    def shade_nodes(self):
        """Returns the shade nodes currently managed by Polyglot."""
        nodes = self.poly.getNodes()
        return [nodes[addr] for addr in nodes if isinstance(nodes[addr], Shade)]


    def pollAll(self, refresh=False):
        for node in self.shade_nodes():
            self.pollShade(node, refresh=refresh)


    def create_shade_nodes(self):
        """Creates a node for each configured shade id and removes the others."""
        nodes_existing = self.poly.getNodes()
        nodes_new = []
        for sid in self.shade_ids:
            shTxt = f"shade{sid}"
            nodes_new.append(shTxt)
            if shTxt not in nodes_existing:
                node = Shade(self.poly, self.address, shTxt, self._shade_name(sid), sid)
                self.poly.addNode(node)
                self.wait_for_node_done()

        for addr in list(nodes_existing):
            if addr != self.address and addr not in nodes_new:
                LOGGER.info(f"need to delete node {addr}")
                self.poly.delNode(addr)

        self.numNodes = len(nodes_new)
        self.setDriver('GV0', self.numNodes)


    def _shade_name(self, sid):
        """Reads the shade's name from the hub, falling back to its id."""
        default = f"Shade {sid}"
        res = self.get(URL_G2_SHADE.format(g=self.gateway, id=sid))
        if res.status_code != requests.codes.ok:
            return default
        try:
            name = base64.b64decode(res.json()['shade']['name']).decode()
        except (KeyError, TypeError, ValueError) as ex:
            LOGGER.error(f"shade {sid} name error: {ex}")
            return default
        return self.poly.getValidName(name[0:SHADE_NAME_LIMIT])


    def get_shade_snapshot(self, sid):
        """Returns the saved snapshot dict for a shade, or None."""
        with self.data_lock:
            return self.Data.get(f"shade{sid}")


    def save_shade_snapshot(self, sid, data):
        with self.data_lock:
            self.Data[f"shade{sid}"] = data


    def pollShade(self, node, refresh=False):
        """Requests fresh telemetry for a shade.

        The request runs on its own thread; the result is delivered later
        through node.handleEvent().

        Args:
            node (Shade): the shade node to poll.
            refresh (bool): ask the hub for a physical refresh of the shade.
        """
        LOGGER.debug(f"pollShade {node.sid} refresh={refresh}")
        thread = Thread(
            target=self._poll_shade,
            args=(node, refresh),
            name=f"ShadePollThread{node.sid}",
            daemon=True
        )
        thread.start()
        return thread


    def _poll_shade(self, node, refresh):
        url = URL_G2_SHADE_REFRESH if refresh else URL_G2_SHADE
        try:
            res = self.get(url.format(g=self.gateway, id=node.sid))
            if res.status_code != requests.codes.ok:
                return False
            return self._deliver(node, res.json())
        except Exception as ex:
            LOGGER.error(f"shade {node.sid} poll error: {ex}", exc_info=True)
            return False


    def _deliver(self, node, data):
        """Hands the `shade` object of a hub response to the shade node."""
        shade = data.get('shade') if isinstance(data, dict) else None
        if not isinstance(shade, dict):
            LOGGER.error(f"shade {node.sid} response without shade data: {data}")
            return False
        node.handleEvent(shade)
        return True


    def setPosition(self, node, fields):
        """Commands the shade to the given positions.

        Args:
            node (Shade): the shade node.
            fields (dict): 'position', or 'bottomPosition' and/or
                           'topPosition', each a percentage 0-100.

        Returns:
            bool: True if the hub accepted the request.
        """
        positions = self._get_g2_positions(fields)
        if not positions:
            LOGGER.error(f"setPosition {node.sid} --nothing to set-- {fields}")
            return False
        shade_url = URL_G2_SHADE.format(g=self.gateway, id=node.sid)
        shade_payload = {"shade": {"positions": positions}}
        LOGGER.info(f"setPosition = {shade_url} , {shade_payload}")
        res = self.put(shade_url, data=shade_payload)
        if res is False:
            return False
        if isinstance(res, dict) and 'shade' in res:
            self._deliver(node, res)
        return True


    def _get_g2_positions(self, fields):
        """Builds the Gen 2 positions object for the requested fields.

        Args:
            fields (dict): position fields as percentages.

        Returns:
            dict: posKind/position pairs for the Gen 2 API.
        """
        positions_array = {}

        bottom = fields.get('position', fields.get('bottomPosition'))
        top = fields.get('topPosition')

        if bottom is not None:
            positions_array.update({'posKind1': POSKIND_BOTTOM,
                                    'position1': percent_to_raw(bottom)})
        if top is not None:
            slot = 2 if bottom is not None else 1
            positions_array.update({f'posKind{slot}': POSKIND_TOP,
                                    f'position{slot}': percent_to_raw(top)})

        return positions_array


    def calibrateShade(self, node):
        return self._motion(node, 'calibrate')


    def jogShade(self, node):
        return self._motion(node, 'jog')


    def _motion(self, node, motion):
        shade_url = URL_G2_SHADE.format(g=self.gateway, id=node.sid)
        body = {'shade': {'motion': motion}}
        LOGGER.info(f"{motion} = {shade_url}")
        return self.put(shade_url, data=body) is not False


    def query(self, command = None):
        """Forces a physical refresh of every shade and reports drivers.

        Args:
            command (dict, optional): The command payload from Polyglot.
                                      Defaults to None.
        """
        LOGGER.info(f"Enter {command}")
        self.pollAll(refresh=True)
        self.reportDrivers()
        LOGGER.debug(f"Exit")


    def updateProfile(self,command = None):
        """Initiates a profile update in Polyglot.

        Args:
            command (dict, optional): The command payload from Polyglot.
                                      Defaults to None.

        Returns:
            bool: The result of the profile update operation.
        """
        LOGGER.info(f"Enter {command}")
        st = self.poly.updateProfile()
        LOGGER.debug(f"Exit")
        return st


    def delete(self):
        """Handles node deletion from Polyglot."""
        self.setDriver('ST', 0, report = True, force = True)
        if self._logs_off_timer is not None:
            self._logs_off_timer.cancel()
        LOGGER.info('bye bye ... deleted.')


    def stop(self):
        """Handles the shutdown sequence for the node."""
        self.setDriver('ST', 0, report = True, force = True)
        if self._logs_off_timer is not None:
            self._logs_off_timer.cancel()
        self.Notices.clear()
        LOGGER.info('NodeServer stopped.')


    def heartbeat(self):
        """Sends a heartbeat signal to the ISY.

        This method alternates sending 'DON' and 'DOF' commands to the controller
        node, allowing ISY programs to monitor the NodeServer's status.
        """
        LOGGER.debug(f'heartbeat: hb={self.hb}')
        command = "DOF" if self.hb else "DON"
        self.reportCmd(command, 2)
        self.hb = not self.hb
        LOGGER.debug("Exit")


    def removeNoticesAll(self, command = None):
        """Removes all custom notices from the Polyglot dashboard.

        Args:
            command (dict, optional): The command payload from Polyglot.
                                      Defaults to None.
        """
        LOGGER.info(f"remove_notices_all: notices={self.Notices} , {command}")
        self.Notices.clear()
        LOGGER.debug(f"Exit")


    def get(self, url: str) -> requests.Response:
        """Performs an HTTP GET request with standardized error handling.

        Args:
            url (str): The URL to send the GET request to.

        Returns:
            requests.Response: The response object from the requests library.
                               If the request fails, a dummy response object
                               with an error status is returned.
        """
        try:
            res = requests.get(url, headers={'accept': 'application/json'}, timeout=10)
        except requests.exceptions.RequestException as e:
            LOGGER.error(f"Error fetching {url}: {e}")
            self.Notices['badfetch'] = "Error fetching from gateway"
            # Create a dummy response object with error info
            res = requests.Response()
            res.status_code = 300
            res._content = b'{"errMsg": "Error fetching from gateway, check configuration"}'
            return res

        if res.status_code == 404:
            LOGGER.error(f"Gateway wrong {url}: {res.status_code}")
            return res

        if res.status_code != requests.codes.ok:
            LOGGER.error(f"Unexpected response fetching {url}: {res.status_code}")
            return res

        LOGGER.debug(f"Get from '{url}' returned {res.status_code}, response body '{res.text}'")
        self.Notices.delete('badfetch')
        return res


    def put(self, url: str, data: dict | None = None) -> dict | bool:
        """Performs an HTTP PUT request with standardized error handling.

        Args:
            url (str): The URL to send the PUT request to.
            data (dict, optional): The JSON payload to send with the request.
                                   Defaults to None.

        Returns:
            dict or bool: The JSON response from the gateway as a dictionary
                          if successful, otherwise False.
        """
        try:
            headers = {'accept': 'application/json'}
            res = requests.put(
                url,
                headers=headers,
                json=data if data is not None else None,
                timeout=10)

            if res.status_code != requests.codes.ok:
                LOGGER.error(f"Unexpected response in put {url}: {res.status_code}")
                LOGGER.debug(f"Response body: {res.text}")
                return False

            LOGGER.debug(f"Put to '{url}' succeeded with status {res.status_code}, response body: {res.text}")
            try:
                return res.json()
            except ValueError:
                LOGGER.error(f"Invalid JSON response from {url}")
                return False

        except requests.exceptions.RequestException as e:
            LOGGER.error(f"Error in put {url} with data {data}: {e}", exc_info=True)
            return False


    # all the drivers - for reference
    # UOMs of interest:
    # 25: index
    # 107: Raw 1-byte unsigned value
    #
    # Driver controls of interest:
    # ST: Status
    # GV0: Custom Control 0
    drivers = [
        {'driver': 'ST', 'value': 1, 'uom': 25, 'name': "Controller Status"},
        {'driver': 'GV0', 'value': 0, 'uom': 107, 'name': "NumberOfNodes"},
    ]


    # Commands that this node can handle.  Should match the
    # 'accepts' section of the nodedef file.
    commands = {
        'QUERY': query,
        'UPDATE_PROFILE': updateProfile,
        'REMOVE_NOTICES_ALL': removeNoticesAll,
    }
