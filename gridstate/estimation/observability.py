# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

import logging
from itertools import combinations

import networkx as nx
import numpy as np

from gridstate.auxiliary import MeasurementConfigurationError
from gridstate.pd2ppc import _pd2ppc
from gridstate.pypower.idx_brch import F_BUS, T_BUS, BR_STATUS

logger = logging.getLogger(__name__)

__all__ = ["Island", "Restoration", "island_topological_flow", "island_topological",
           "restoration_gram"]


class Island:
    """
    Partition of the buses into observable islands.

    island: list of islands, each a sorted list of bus positions (order of net.bus)
    bus: island number of every bus position
    tie: "bus" and "branch" sets of positions connecting different islands, "injection" the
        bus positions with an active power injection measurement still relevant for merging
    bus_index: index of net.bus, bus_index[position] is the bus of a position
    """

    def __init__(self, island, bus, tie, bus_index):
        self.island = island
        self.bus = bus
        self.tie = tie
        self.bus_index = bus_index

    def __len__(self):
        return len(self.island)

    def __repr__(self):  # pragma: no cover
        return "Island(%d islands: %s)" % (len(self.island), self.buses)

    @property
    def buses(self):
        """Islands as lists of net.bus indices."""
        return [[self.bus_index[i] for i in island] for island in self.island]


class Restoration:
    """
    Outcome of an observability restoration.

    observable: True if the reduced coefficient matrix reached full rank
    rank, initial_rank: rank of its Gram matrix after and before the restoration
    islands: topological islands of the measurement set after the restoration
    added: (table, index) of the pseudo records that were copied into the registry
    """

    def __init__(self, observable, rank, initial_rank, islands, added):
        self.observable = observable
        self.rank = rank
        self.initial_rank = initial_rank
        self.islands = islands
        self.added = added

    def __repr__(self):  # pragma: no cover
        return "Restoration(observable=%s, rank=%d, added=%s)" % (self.observable, self.rank,
                                                                  self.added)


# --- graph helpers

def _topology(net):
    ppci = _pd2ppc(net, calculate_admittance=False)
    branch = ppci["branch"]
    in_service = branch[:, BR_STATUS] > 0
    fb = branch[:, F_BUS].real.astype(np.int64)
    tb = branch[:, T_BUS].real.astype(np.int64)

    graph = nx.Graph()
    graph.add_nodes_from(range(len(ppci["bus"])))
    graph.add_edges_from(zip(fb[in_service], tb[in_service]))
    return ppci, graph, fb, tb, in_service


def _neighbourhood(graph, bus):
    return [bus] + sorted(graph[bus])


def _flow_branches(net, registry, in_service):
    """Positions of in service branches with an in service active power flow or branch PMU."""
    branch_lookup = net["_pd2ppc_lookups"]["branch"]
    flows = registry.in_service_measurements("p", "branch").element.values
    pmus = registry.in_service_pmus("branch").element.values
    positions = np.unique(branch_lookup[np.r_[flows, pmus].astype(np.int64)])
    return [b for b in positions if in_service[b]]


def _injection_buses(net, registry):
    bus_lookup = net["_pd2ppc_lookups"]["bus"]
    injections = registry.in_service_measurements("p", "bus").element.values
    return set(bus_lookup[injections.astype(np.int64)].tolist())


def _renumber(island_lists, n_bus):
    island_lists = sorted((sorted(island) for island in island_lists), key=lambda isl: isl[0])
    bus = np.zeros(n_bus, dtype=np.int64)
    for k, island in enumerate(island_lists):
        bus[island] = k
    return island_lists, bus


def _connected_components(graph, flow_edges, n_bus):
    flow_graph = nx.Graph()
    flow_graph.add_nodes_from(range(n_bus))
    flow_graph.add_edges_from(flow_edges)
    return _renumber([list(c) for c in nx.connected_components(flow_graph)], n_bus)


def _tie_bus_branch(observe, fb, tb, in_service):
    observe.tie["bus"] = set()
    observe.tie["branch"] = set()
    for k in np.flatnonzero(in_service):
        if observe.bus[fb[k]] != observe.bus[tb[k]]:
            observe.tie["branch"].add(int(k))
            observe.tie["bus"].update((int(fb[k]), int(tb[k])))


def _merge(observe, islands_to_merge):
    """Merges the given island numbers into the first of them and renumbers the islands."""
    islands_to_merge = list(islands_to_merge)
    target = islands_to_merge[0]
    for other in islands_to_merge[1:]:
        if other == target:
            continue
        observe.island[target].extend(observe.island[other])
        observe.island[other] = []
    island_lists = [island for island in observe.island if island]
    observe.island, observe.bus = _renumber(island_lists, len(observe.bus))


def _merge_pairs(observe, graph):
    """
    Merges an island with the only other island reached by the neighbourhood of one of its
    tie injections. Injections whose neighbourhood reaches no other island are dropped.
    """
    merge = True
    while merge and len(observe.island) > 1:
        merge = False
        for bus in sorted(observe.tie["injection"]):
            own = observe.bus[bus]
            incident = {observe.bus[k] for k in graph[bus]} - {own}
            if len(incident) > 1:
                continue
            if len(incident) == 1:
                _merge(observe, [own, incident.pop()])
            observe.tie["injection"].discard(bus)
            merge = True
            break


def _find_merge_group(incident):
    """
    Finds t injections whose neighbourhoods together touch exactly t + 1 islands, smallest
    t first.
    """
    for t in range(2, len(incident) + 1):
        for group in combinations(range(len(incident)), t):
            if len(set().union(*(incident[k] for k in group))) == t + 1:
                return group
    return None


def _merge_flow_islands(observe, graph):
    while len(observe.island) > 1:
        injections = sorted(observe.tie["injection"])
        incident = [{observe.bus[k] for k in _neighbourhood(graph, bus)} for bus in injections]
        group = _find_merge_group(incident)
        if group is None:
            break
        _merge(observe, sorted(set().union(*(incident[k] for k in group))))

        for bus in injections:
            if len({observe.bus[k] for k in _neighbourhood(graph, bus)}) == 1:
                observe.tie["injection"].discard(bus)
        _merge_pairs(observe, graph)


def _flow_islands(net, registry):
    ppci, graph, fb, tb, in_service = _topology(net)
    n_bus = len(ppci["bus"])
    flow_edges = [(fb[k], tb[k]) for k in _flow_branches(net, registry, in_service)]
    island, bus = _connected_components(graph, flow_edges, n_bus)
    observe = Island(island, bus, {"bus": set(), "branch": set(), "injection": set()},
                     ppci["internal"]["bus_index"])
    _tie_bus_branch(observe, fb, tb, in_service)
    observe.tie["injection"] = _injection_buses(net, registry) & observe.tie["bus"]
    _merge_pairs(observe, graph)
    return observe, graph, fb, tb, in_service


def island_topological_flow(net, registry):
    """
    Flow observable islands: connected components of the graph whose edges are the in service
    branches with an in service active power flow measurement (either end) or branch PMU,
    merged pairwise through tie injections whose neighbourhood reaches exactly one other
    island. Active and reactive power measurements are assumed to come in pairs.

    INPUT:
        **net** (gridstateNet) - network

        **registry** (MeasurementRegistry) - measurements of the network

    OUTPUT:
        **islands** (Island) - partition of the buses
    """
    observe, graph, fb, tb, in_service = _flow_islands(net, registry)
    _tie_bus_branch(observe, fb, tb, in_service)
    logger.debug("Found %d flow islands" % len(observe.island))
    return observe


def island_topological(net, registry):
    """
    Maximal observable islands: the flow islands are additionally merged through groups of t
    tie injections whose neighbourhoods touch exactly t + 1 islands.

    INPUT:
        **net** (gridstateNet) - network

        **registry** (MeasurementRegistry) - measurements of the network

    OUTPUT:
        **islands** (Island) - partition of the buses
    """
    observe, graph, fb, tb, in_service = _flow_islands(net, registry)
    _merge_flow_islands(observe, graph)
    if len(observe.island) > 1:
        _tie_bus_branch(observe, fb, tb, in_service)
    else:
        observe.tie["bus"], observe.tie["branch"] = set(), set()
    logger.debug("Found %d observable islands" % len(observe.island))
    return observe


# --- restoration

def _tie_row(observe, graph, bus):
    row = np.zeros(len(observe.island))
    own = observe.bus[bus]
    for k in graph[bus]:
        if observe.bus[k] != own:
            row[observe.bus[k]] -= 1
            row[own] += 1
    return row


def _direct_row(observe, bus):
    row = np.zeros(len(observe.island))
    row[observe.bus[bus]] = 1
    return row


def _gram_rank(coefficient, threshold):
    if coefficient.shape[0] == 0:
        return 0
    return int(np.linalg.matrix_rank(coefficient.T @ coefficient, tol=threshold))


def _candidates(net, pseudo, observe, graph, fb, tb, in_service):
    """Pseudo measurements that connect islands, with their reduced coefficient row."""
    bus_lookup = net["_pd2ppc_lookups"]["bus"]
    branch_lookup = net["_pd2ppc_lookups"]["branch"]
    candidates = []
    for index, meas in pseudo.in_service_measurements("p").iterrows():
        if meas.element_type == "bus":
            bus = bus_lookup[int(meas.element)]
            if bus in observe.tie["bus"]:
                candidates.append((("measurement", index), _tie_row(observe, graph, bus)))
        else:
            branch = branch_lookup[int(meas.element)]
            if branch in observe.tie["branch"] and in_service[branch]:
                row = np.zeros(len(observe.island))
                row[observe.bus[fb[branch]]] += 1
                row[observe.bus[tb[branch]]] -= 1
                candidates.append((("measurement", index), row))
    for index, pmu in pseudo.in_service_pmus("bus").iterrows():
        candidates.append((("pmu", index), _direct_row(observe, bus_lookup[int(pmu.element)])))
    return candidates


def _copy_pseudo(registry, pseudo, table, index):
    if table == "pmu":
        pmu = pseudo.pmu.loc[index]
        registry.create_pmu(pmu.element_type, pmu.magnitude, pmu.angle, element=pmu.element,
                            side=pmu.side, variance_magnitude=pmu.variance_magnitude,
                            variance_angle=pmu.variance_angle, polar=pmu.polar,
                            correlated=pmu.correlated, name=pmu["name"])
        return
    meas = pseudo.measurement.loc[index]
    registry.create_measurement("p", meas.element_type, meas.value, meas.variance,
                                element=meas.element, side=meas.side, name=meas["name"])
    # the matching reactive power pseudo measurement keeps P and Q in pairs
    reactive = pseudo.in_service_measurements("q", meas.element_type)
    reactive = reactive[reactive.element.values == meas.element]
    if meas.element_type == "branch":
        reactive = reactive[reactive.side.values == meas.side]
    if len(reactive):
        q = reactive.iloc[0]
        registry.create_measurement("q", q.element_type, q.value, q.variance,
                                    element=q.element, side=q.side, name=q["name"])


def restoration_gram(net, registry, pseudo, islands, threshold=1e-5):
    """
    Restores observability with pseudo measurements.

    The reduced coefficient matrix has one column per island and rows for the tie injection
    measurements, the bus PMUs and the slack bus. Candidates of the pseudo registry (injections
    at tie buses, flows on tie branches, bus PMUs) are appended one at a time and kept only if
    the rank of the Gram matrix increases. Kept candidates are copied into registry (active
    power candidates together with the matching reactive power measurement) until the rank
    equals the number of islands or the candidates are exhausted.

    INPUT:
        **net** (gridstateNet) - network

        **registry** (MeasurementRegistry) - measurements, receives the pseudo measurements

        **pseudo** (MeasurementRegistry) - pool of pseudo measurements of the same network

        **islands** (Island) - result of island_topological or island_topological_flow

    OPTIONAL:
        **threshold** (float, 1e-5) - singular values of the Gram matrix below this value are
            treated as zero

    OUTPUT:
        **restoration** (Restoration) - rank, observability and added pseudo measurements
    """
    ppci, graph, fb, tb, in_service = _topology(net)
    ref = ppci["internal"]["ref"]
    if len(ref) != 1:
        raise MeasurementConfigurationError("Observability restoration needs exactly one slack "
                                            "bus")
    bus_lookup = net["_pd2ppc_lookups"]["bus"]
    n_island = len(islands.island)

    rows = [_tie_row(islands, graph, bus) for bus in sorted(islands.tie["injection"])]
    rows += [_direct_row(islands, bus_lookup[element])
             for element in registry.in_service_pmus("bus").element.values]
    rows.append(_direct_row(islands, ref[0]))
    coefficient = np.array(rows).reshape(-1, n_island)
    rank = initial_rank = _gram_rank(coefficient, threshold)

    added = []
    for (table, index), row in _candidates(net, pseudo, islands, graph, fb, tb, in_service):
        if rank == n_island:
            break
        extended = np.vstack((coefficient, row))
        extended_rank = _gram_rank(extended, threshold)
        if extended_rank > rank:
            coefficient, rank = extended, extended_rank
            _copy_pseudo(registry, pseudo, table, index)
            added.append((table, index))
            logger.debug("Added pseudo %s %s, rank %d of %d" % (table, index, rank, n_island))

    observable = rank == n_island
    if not observable:
        logger.warning("Observability could not be restored with the pseudo measurements: "
                       "rank %d of %d islands" % (rank, n_island))
    return Restoration(observable, rank, initial_rank, island_topological(net, registry), added)
