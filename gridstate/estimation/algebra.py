# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

import numpy as np
from numpy import conj, arange, int64
from scipy.sparse import vstack, hstack, eye, csr_matrix as sparse

from gridstate.auxiliary import AlgorithmUnknown
from gridstate.pypower.idx_brch import F_BUS, T_BUS
from gridstate.pypower.idx_bus import VA

__all__ = ["ACAlgebra", "DCAlgebra", "PMUAlgebra", "ALGEBRA_MAPPING", "get_algebra",
           "CURRENT_FUNCTIONS"]

# measurement functions; "from"/"to" refer to the branch end
AC_FUNCTIONS = ("vm_bus", "va_bus", "p_bus", "q_bus", "p_from", "p_to", "q_from", "q_to",
                "i_from", "i_to", "ia_from", "ia_to", "vre_bus", "vim_bus",
                "ire_from", "ire_to", "iim_from", "iim_to")
DC_FUNCTIONS = ("va_bus", "p_bus", "p_from", "p_to")
PMU_FUNCTIONS = ("vre_bus", "vim_bus", "ire_from", "ire_to", "iim_from", "iim_to")
CURRENT_FUNCTIONS = ("i_from", "i_to", "ia_from", "ia_to")


class BaseAlgebra:
    """
    Measurement functions h(x) and their Jacobian for one state parameterization.

    The measurement rows are given as two arrays of equal length: the function name of each
    row and the position of the bus or branch it refers to. Every function is evaluated
    once for all buses or branches and the rows pick their entries.
    """
    linear = False
    functions = ()

    def __init__(self, ppci):
        self.ppci = ppci
        self.fb = ppci['branch'][:, F_BUS].real.astype(int64)
        self.tb = ppci['branch'][:, T_BUS].real.astype(int64)
        self.n_bus = ppci['bus'].shape[0]
        self.n_branch = ppci['branch'].shape[0]
        self.slack = int(ppci['internal']['ref'][0])
        self.slack_angle = float(ppci['bus'][self.slack, VA])
        self.non_slack = ppci['internal']['non_slack']
        self.Ybus = ppci['internal']['Ybus']
        self.Yf = ppci['internal']['Yf']
        self.Yt = ppci['internal']['Yt']

    @property
    def n_state(self):
        return len(self.state_columns)

    @property
    def state_columns(self):
        raise NotImplementedError

    def initial_state(self, vm, va):
        raise NotImplementedError

    def voltage(self, x):
        """Returns magnitudes and angles of all bus voltages for state x."""
        raise NotImplementedError

    def supports(self, function):
        return function in self.functions

    def create_hx(self, x, function, position):
        quantities = self._quantities(x)
        hx = np.zeros(len(function))
        for f in np.unique(function):
            mask = function == f
            hx[mask] = quantities[f]()[position[mask]]
        return hx

    def create_hx_jacobian(self, x, function, position):
        derivatives = self._derivatives(x)
        blocks, order = [], []
        for f in np.unique(function):
            rows = np.flatnonzero(function == f)
            blocks.append(sparse(derivatives[f]())[position[rows], :])
            order.append(rows)
        if not blocks:
            return sparse((0, self.n_state))
        jac = vstack(blocks, format="csr")[np.argsort(np.concatenate(order)), :]
        return jac[:, self.state_columns]

    def _quantities(self, x):
        raise NotImplementedError

    def _derivatives(self, x):
        raise NotImplementedError


class ACAlgebra(BaseAlgebra):
    """
    AC measurement functions over the state [angles of non slack buses, magnitudes of all
    buses]. The slack angle is fixed to the network value.
    """
    functions = AC_FUNCTIONS

    @property
    def state_columns(self):
        return np.r_[self.non_slack, self.n_bus + arange(self.n_bus)]

    def initial_state(self, vm, va):
        return np.r_[np.asarray(va, dtype=np.float64)[self.non_slack],
                     np.asarray(vm, dtype=np.float64)]

    def voltage(self, x):
        va = np.full(self.n_bus, self.slack_angle)
        va[self.non_slack] = x[:len(self.non_slack)]
        vm = np.array(x[len(self.non_slack):], dtype=np.float64)
        return vm, va

    def _branch_admittance(self, side):
        return (self.Yf, self.fb) if side == "from" else (self.Yt, self.tb)

    def _quantities(self, x):
        vm, va = self.voltage(x)
        V = vm * np.exp(1j * va)
        cache = {}

        def s_bus():
            if "s_bus" not in cache:
                cache["s_bus"] = V * conj(self.Ybus * V)
            return cache["s_bus"]

        def current(side):
            if side not in cache:
                cache[side] = self._branch_admittance(side)[0] * V
            return cache[side]

        def s_branch(side):
            return V[self._branch_admittance(side)[1]] * conj(current(side))

        return {"vm_bus": lambda: vm,
                "va_bus": lambda: va,
                "p_bus": lambda: s_bus().real,
                "q_bus": lambda: s_bus().imag,
                "p_from": lambda: s_branch("from").real,
                "p_to": lambda: s_branch("to").real,
                "q_from": lambda: s_branch("from").imag,
                "q_to": lambda: s_branch("to").imag,
                "i_from": lambda: np.abs(current("from")),
                "i_to": lambda: np.abs(current("to")),
                "ia_from": lambda: np.angle(current("from")),
                "ia_to": lambda: np.angle(current("to")),
                "vre_bus": lambda: V.real,
                "vim_bus": lambda: V.imag,
                "ire_from": lambda: current("from").real,
                "ire_to": lambda: current("to").real,
                "iim_from": lambda: current("from").imag,
                "iim_to": lambda: current("to").imag}

    def _derivatives(self, x):
        vm, va = self.voltage(x)
        V = vm * np.exp(1j * va)
        cache = {}

        def d_sbus():
            if "s_bus" not in cache:
                cache["s_bus"] = self._dSbus_dv(V)
            return cache["s_bus"]

        def d_sbr(side):
            if ("s", side) not in cache:
                cache[("s", side)] = self._dSbr_dv(V, side)
            return cache[("s", side)]

        def d_ibr(side):
            if ("i", side) not in cache:
                cache[("i", side)] = self._dIbr_dV(V, side)
            return cache[("i", side)]

        return {"vm_bus": lambda: self._dVmbus_dV(V),
                "va_bus": lambda: self._dVabus_dV(V),
                "p_bus": lambda: d_sbus()[0],
                "q_bus": lambda: d_sbus()[1],
                "p_from": lambda: d_sbr("from")[0],
                "p_to": lambda: d_sbr("to")[0],
                "q_from": lambda: d_sbr("from")[1],
                "q_to": lambda: d_sbr("to")[1],
                "i_from": lambda: self._dImbr_dV(V, "from", d_ibr("from")),
                "i_to": lambda: self._dImbr_dV(V, "to", d_ibr("to")),
                "ia_from": lambda: self._dIabr_dV(V, "from", d_ibr("from")),
                "ia_to": lambda: self._dIabr_dV(V, "to", d_ibr("to")),
                "vre_bus": lambda: self._dVrebus_dV(vm, va),
                "vim_bus": lambda: self._dVimbus_dV(vm, va),
                "ire_from": lambda: d_ibr("from").real,
                "ire_to": lambda: d_ibr("to").real,
                "iim_from": lambda: d_ibr("from").imag,
                "iim_to": lambda: d_ibr("to").imag}

    def _dSbus_dv(self, V):
        Ybus = self.Ybus
        Ibus = Ybus * V
        ib = arange(len(V))

        diagV = sparse((V, (ib, ib)))
        diagIbus = sparse((Ibus, (ib, ib)))
        diagVnorm = sparse((V / abs(V), (ib, ib)))

        dS_dVm = diagV @ conj(Ybus @ diagVnorm) + conj(diagIbus) @ diagVnorm
        dS_dVa = 1j * diagV @ conj(diagIbus - Ybus @ diagV)

        dP = hstack((dS_dVa.real, dS_dVm.real))
        dQ = hstack((dS_dVa.imag, dS_dVm.imag))
        return dP, dQ

    def _dSbr_dv(self, V, side):
        Y, s = self._branch_admittance(side)
        nl = len(s)
        nb = len(V)
        il = arange(nl)
        ib = arange(nb)

        I = Y * V
        Vnorm = V / abs(V)

        diagVs = sparse((V[s], (il, il)))
        diagI = sparse((I, (il, il)))
        diagV = sparse((V, (ib, ib)))
        diagVnorm = sparse((Vnorm, (ib, ib)))

        shape = (nl, nb)
        # Partial derivative of S w.r.t voltage phase angle.
        dS_dVa = 1j * (conj(diagI) @
                       sparse((V[s], (il, s)), shape) - diagVs @ conj(Y @ diagV))
        # Partial derivative of S w.r.t. voltage amplitude.
        dS_dVm = diagVs @ conj(Y @ diagVnorm) + conj(diagI) @ \
            sparse((Vnorm[s], (il, s)), shape)

        dP = hstack((dS_dVa.real, dS_dVm.real))
        dQ = hstack((dS_dVa.imag, dS_dVm.imag))
        return dP, dQ

    def _dIbr_dV(self, V, side):
        # complex current derivatives [dI/dVa, dI/dVm]
        Y = self._branch_admittance(side)[0]
        ib = arange(len(V))
        dI_dVa = Y @ sparse((1j * V, (ib, ib)))
        dI_dVm = Y @ sparse((V / abs(V), (ib, ib)))
        return sparse(hstack((dI_dVa, dI_dVm)))

    def _branch_current_norm(self, V, side, inverse):
        I = self._branch_admittance(side)[0] * V
        nl = len(I)
        il = arange(nl)
        idx = abs(I) != 0
        # zero currents (e.g. flat start without charging) have no defined derivative
        values = np.zeros(nl, dtype=np.complex128)
        values[idx] = 1. / I[idx] if inverse else conj(I[idx]) / abs(I[idx])
        return sparse((values, (il, il)), shape=(nl, nl))

    def _dImbr_dV(self, V, side, dI):
        return (self._branch_current_norm(V, side, inverse=False) @ dI).real

    def _dIabr_dV(self, V, side, dI):
        return (self._branch_current_norm(V, side, inverse=True) @ dI).imag

    @staticmethod
    def _dVmbus_dV(V):
        n = V.shape[0]
        return hstack((sparse((n, n)), eye(n, n, format='csr')))

    @staticmethod
    def _dVabus_dV(V):
        n = V.shape[0]
        return hstack((eye(n, n, format='csr'), sparse((n, n))))

    @staticmethod
    def _dVrebus_dV(vm, va):
        ib = arange(len(vm))
        return hstack((sparse((-vm * np.sin(va), (ib, ib))), sparse((np.cos(va), (ib, ib)))))

    @staticmethod
    def _dVimbus_dV(vm, va):
        ib = arange(len(vm))
        return hstack((sparse((vm * np.cos(va), (ib, ib))), sparse((np.sin(va), (ib, ib)))))


class DCAlgebra(BaseAlgebra):
    """
    DC model: P = Bbus theta + Pbusinj, Pf = Bf theta + Pfinj over the angles of the non slack
    buses. Voltage magnitudes are fixed to 1 p.u.
    """
    linear = True
    functions = DC_FUNCTIONS

    def __init__(self, ppci):
        super().__init__(ppci)
        self.Bbus = ppci['internal']['Bbus']
        self.Bf = ppci['internal']['Bf']
        self.Pbusinj = ppci['internal']['Pbusinj']
        self.Pfinj = ppci['internal']['Pfinj']

    @property
    def state_columns(self):
        return self.non_slack

    def initial_state(self, vm, va):
        return np.asarray(va, dtype=np.float64)[self.non_slack].copy()

    def voltage(self, x):
        va = np.full(self.n_bus, self.slack_angle)
        va[self.non_slack] = x
        return np.ones(self.n_bus), va

    def _quantities(self, x):
        va = self.voltage(x)[1]
        return {"va_bus": lambda: va,
                "p_bus": lambda: self.Bbus * va + self.Pbusinj,
                "p_from": lambda: self.Bf * va + self.Pfinj,
                "p_to": lambda: -(self.Bf * va + self.Pfinj)}

    def _derivatives(self, x):
        return {"va_bus": lambda: eye(self.n_bus, self.n_bus, format='csr'),
                "p_bus": lambda: self.Bbus,
                "p_from": lambda: self.Bf,
                "p_to": lambda: -self.Bf}


class PMUAlgebra(BaseAlgebra):
    """
    PMU-only model over the rectangular state [Re V, Im V] of all buses. The angle reference
    is carried by the phasor measurements, no column is removed.
    """
    linear = True
    functions = PMU_FUNCTIONS

    @property
    def state_columns(self):
        return arange(2 * self.n_bus)

    def initial_state(self, vm, va):
        vm, va = np.asarray(vm, dtype=np.float64), np.asarray(va, dtype=np.float64)
        return np.r_[vm * np.cos(va), vm * np.sin(va)]

    def voltage(self, x):
        V = x[:self.n_bus] + 1j * x[self.n_bus:]
        return np.abs(V), np.angle(V)

    def _quantities(self, x):
        V = x[:self.n_bus] + 1j * x[self.n_bus:]
        return {"vre_bus": lambda: V.real,
                "vim_bus": lambda: V.imag,
                "ire_from": lambda: (self.Yf * V).real,
                "ire_to": lambda: (self.Yt * V).real,
                "iim_from": lambda: (self.Yf * V).imag,
                "iim_to": lambda: (self.Yt * V).imag}

    def _derivatives(self, x):
        n = self.n_bus

        def real_part(Y):
            # Re(Y V) = G e - B f
            return hstack((Y.real, -Y.imag))

        def imag_part(Y):
            # Im(Y V) = B e + G f
            return hstack((Y.imag, Y.real))

        return {"vre_bus": lambda: hstack((eye(n, n, format='csr'), sparse((n, n)))),
                "vim_bus": lambda: hstack((sparse((n, n)), eye(n, n, format='csr'))),
                "ire_from": lambda: real_part(self.Yf),
                "ire_to": lambda: real_part(self.Yt),
                "iim_from": lambda: imag_part(self.Yf),
                "iim_to": lambda: imag_part(self.Yt)}


ALGEBRA_MAPPING = {"ac": ACAlgebra, "dc": DCAlgebra, "pmu": PMUAlgebra}


def get_algebra(kind, ppci):
    if kind not in ALGEBRA_MAPPING:
        raise AlgorithmUnknown("Estimation kind %s is not supported, use one of %s"
                               % (kind, list(ALGEBRA_MAPPING.keys())))
    return ALGEBRA_MAPPING[kind](ppci)
